from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Generic, Optional, TypeVar

from .document_store import DocumentStore

T = TypeVar("T")


class BaseService(ABC, Generic[T]):
    """Base class for registries that own one collection of a DocumentStore."""

    collection: str = ""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._logger = logging.getLogger(f"tipline.{self.__class__.__name__.lower()}")

    @abstractmethod
    def _from_payload(self, payload: dict[str, Any]) -> T:
        """Convert a stored payload to the service's data type."""

    async def _load(self, key: str) -> Optional[T]:
        payload = await self._store.get(self.collection, key)
        if payload is None:
            return None
        return self._from_payload(payload)

    async def _load_all(self) -> list[T]:
        return [self._from_payload(p) for p in await self._store.list(self.collection)]

    async def count(self) -> int:
        return await self._store.count(self.collection)

"""
Contract between the core and the chat transport.

The core never talks to the chat platform directly; it calls a
``MessagingGateway``. Implementations raise ``ExternalGatewayError`` for any
transport failure so the core can apply its publish/notify policy.
"""

from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from .models import ButtonRows, MessageRef


@runtime_checkable
class MessagingGateway(Protocol):
    async def send_message(
        self,
        target: int,
        text: str,
        *,
        buttons: Optional[ButtonRows] = None,
        reply_to: Optional[MessageRef] = None,
        silent: bool = False,
    ) -> MessageRef:
        """Send ``text`` to a chat or user and return the new message's ref."""
        ...

    async def edit_message(
        self,
        target: int,
        ref: MessageRef,
        text: str,
        *,
        buttons: Optional[ButtonRows] = None,
    ) -> None:
        """Replace the text of a message the bot sent. ``buttons=None`` removes them."""
        ...

    async def forward_message(self, destination: int, source: MessageRef, *, silent: bool = False) -> MessageRef:
        ...

    async def acknowledge_action(self, action_id: str, *, text: Optional[str] = None, alert: bool = False) -> None:
        """Answer a button press. ``alert`` shows the text as an error."""
        ...

    async def delete_message(self, target: int, ref: MessageRef) -> None:
        ...

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    resolved = getattr(logging, str(level).upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(resolved)

    # discord.http is chatty at INFO (rate limit buckets etc.)
    logging.getLogger("discord.http").setLevel(logging.WARNING)
    logging.getLogger("tipline").info("Logging configured (level=%s)", logging.getLevelName(resolved))

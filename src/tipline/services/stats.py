from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass
class RuntimeStats:
    started_at: float = field(default_factory=time.time)
    writes_enqueued: int = 0
    writes_executed: int = 0
    writes_failed: int = 0
    submissions_staged: int = 0
    submissions_created: int = 0
    submissions_approved: int = 0
    submissions_rejected: int = 0
    users_banned: int = 0
    replies_relayed: int = 0

    def uptime_seconds(self) -> int:
        return int(time.time() - self.started_at)

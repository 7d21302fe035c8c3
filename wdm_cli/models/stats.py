"""
Dataclass for tracking the outcome of a multi-provider update.
"""

import asyncio
import time
from dataclasses import dataclass, field


@dataclass
class UpdateStats:
    """Tracks statistics for one update invocation across providers."""

    downloaded: list[str] = field(default_factory=list)
    already_current: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    bytes_transferred: int = 0
    started_at: float = field(default_factory=time.monotonic, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    async def record(
        self, name: str, *, already_current: bool, bytes_transferred: int = 0
    ) -> None:
        """Records a successful provider update. Safe across concurrent updates."""
        async with self._lock:
            if already_current:
                self.already_current.append(name)
            else:
                self.downloaded.append(name)
            self.bytes_transferred += bytes_transferred

    async def record_failure(self, name: str) -> None:
        async with self._lock:
            self.failed.append(name)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    @property
    def total(self) -> int:
        return len(self.downloaded) + len(self.already_current) + len(self.failed)

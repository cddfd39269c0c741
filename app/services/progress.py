import asyncio
import time
from collections.abc import Callable
from typing import Any

from loguru import logger

from app.schemas.progress import ImportProgress

Clock = Callable[[], float]


class ProgressStore:
    """In-process map of upload id to import progress, with time based eviction.

    ``get`` returns ``None`` for unknown or expired ids, never a stale snapshot.
    Snapshots are copied on the way in and out so pollers never see half applied
    updates.
    """

    def __init__(self, clock: Clock = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, ImportProgress] = {}
        self._expires_at: dict[str, float] = {}
        self._evictions: dict[str, asyncio.TimerHandle] = {}

    def set(self, upload_id: str, snapshot: ImportProgress) -> None:
        self._entries[upload_id] = snapshot.model_copy()
        self._expires_at.pop(upload_id, None)
        handle = self._evictions.pop(upload_id, None)
        if handle is not None:
            handle.cancel()

    def get(self, upload_id: str) -> ImportProgress | None:
        expires_at = self._expires_at.get(upload_id)
        if expires_at is not None and self._clock() >= expires_at:
            self.delete(upload_id)
            return None

        snapshot = self._entries.get(upload_id)
        return snapshot.model_copy() if snapshot is not None else None

    def update(self, upload_id: str, **changes: Any) -> ImportProgress | None:
        snapshot = self._entries.get(upload_id)
        if snapshot is None:
            return None

        updated = snapshot.model_copy(update=changes)
        self._entries[upload_id] = updated
        return updated.model_copy()

    def delete(self, upload_id: str) -> bool:
        self._expires_at.pop(upload_id, None)
        handle = self._evictions.pop(upload_id, None)
        if handle is not None:
            handle.cancel()
        return self._entries.pop(upload_id, None) is not None

    def expire_after(self, upload_id: str, seconds: float) -> None:
        """Drop the entry ``seconds`` from now, both on read and via a scheduled eviction."""
        if upload_id not in self._entries:
            return

        self._expires_at[upload_id] = self._clock() + seconds
        previous = self._evictions.pop(upload_id, None)
        if previous is not None:
            previous.cancel()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._evictions[upload_id] = loop.call_later(seconds, self._evict, upload_id)

    def _evict(self, upload_id: str) -> None:
        self._evictions.pop(upload_id, None)
        if self._entries.pop(upload_id, None) is not None:
            self._expires_at.pop(upload_id, None)
            logger.debug(f"Evicted progress for upload {upload_id}")

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, upload_id: object) -> bool:
        return upload_id in self._entries


progress_store = ProgressStore()


def get_progress_store() -> ProgressStore:
    return progress_store

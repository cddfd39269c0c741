import asyncio
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from types import TracebackType
from typing import Protocol, Self

from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.enums import Game
from app.schemas.gacha import RawPull

SOURCE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

PageCallback = Callable[[int, int], Awaitable[None]]
"""Called as ``on_page(pages_done, records_so_far)`` while a banner is being fetched"""

Sleep = Callable[[float], Awaitable[None]]


class RetryPolicy(BaseModel):
    """Retry schedule for transient upstream failures."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=2.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1)

    def retrying(
        self,
        retry_on: tuple[type[BaseException], ...],
        *,
        sleep: Sleep,
        before_sleep: Callable[[RetryCallState], None] | None = None,
    ) -> AsyncRetrying:
        """Retry controller waiting ``base_delay * multiplier ** (n - 1)`` after failure ``n``.

        The last failure is re-raised once ``max_attempts`` is reached.
        """
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=self.multiplier),
            retry=retry_if_exception_type(retry_on),
            sleep=sleep,
            before_sleep=before_sleep,
            reraise=True,
        )


class PullSource(Protocol):
    """Where an import job reads its pulls from."""

    game: Game

    async def __aenter__(self) -> Self: ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None: ...

    def banner_ids(self) -> Sequence[str]:
        """Banner ids to import, in the order they must be processed."""
        ...

    async def fetch_banner(self, banner_id: str, on_page: PageCallback) -> list[RawPull]:
        """All pulls of one banner in ascending time order.

        Raises:
            FatalImportError: The whole job must stop.
            BannerFetchError: Only this banner failed.
        """
        ...


def parse_source_time(value: object) -> datetime | None:
    """Parse the ``YYYY-MM-DD HH:MM:SS`` timestamps used by game APIs and exports."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return datetime.strptime(text, SOURCE_TIME_FORMAT)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed.replace(tzinfo=None)


def sort_chronologically(pulls: list[RawPull]) -> list[RawPull]:
    """Stable ascending sort by time, pulls without a time keep their place at the front."""
    return sorted(pulls, key=lambda pull: pull.time or datetime.min)


async def default_sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)

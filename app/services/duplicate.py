from datetime import datetime, timedelta

from loguru import logger

from app.core.enums import Game
from app.services.pull_store import PullStore
from app.utils.normalize import normalize_item_name


class DuplicateDetector:
    """Decides whether a pull was already persisted by an earlier import session.

    Pulls of one multi-pull share the same timestamp, so a timestamp match alone
    is not a duplicate. Only rows created more than ``buffer`` before the current
    session started are compared; rows the current session writes are never
    candidates. Two sessions started less than ``buffer`` apart cannot see each
    other's rows.
    """

    def __init__(self, store: PullStore, *, buffer: timedelta) -> None:
        self.store = store
        self.buffer = buffer

    async def is_duplicate(  # noqa: PLR0913
        self,
        *,
        user_id: int,
        normalized_item_name: str,
        banner_id: str,
        game: Game,
        time: datetime,
        session_start: datetime,
    ) -> bool:
        candidates = await self.store.find_pulls_at(
            user_id=user_id,
            banner_id=banner_id,
            game=game,
            time=time,
            created_before=session_start - self.buffer,
        )

        for existing in candidates:
            if normalize_item_name(existing.item_name) == normalized_item_name:
                logger.debug(
                    f"Cross-import duplicate: {normalized_item_name} at {time.isoformat()} "
                    f"on {banner_id}"
                )
                return True
        return False

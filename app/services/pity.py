from collections.abc import Iterable
from datetime import datetime

from app.core.enums import Game
from app.services.pull_store import PullStore

TOP_RARITY = 5


class PityCalculator:
    def __init__(self, store: PullStore) -> None:
        self.store = store

    async def compute(self, *, user_id: int, banner_id: str, game: Game, before: datetime) -> int:
        """Count the pull at ``before`` plus every earlier pull since the last top rarity pull.

        Only pulls strictly earlier than ``before`` are considered, so pulls must be
        persisted in ascending time order within a banner.
        """
        rank_types = await self.store.list_rank_types_before(
            user_id=user_id, banner_id=banner_id, game=game, before=before
        )
        return count_pity(rank_types)


def count_pity(rank_types_newest_first: Iterable[int]) -> int:
    pity = 1
    for rank_type in rank_types_newest_first:
        if rank_type == TOP_RARITY:
            break
        pity += 1
    return pity

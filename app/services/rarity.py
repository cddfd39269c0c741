from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from app.core.enums import Game
from app.models.item_name_mapping import ItemNameMapping
from app.services.pull_store import PullStore
from app.utils.normalize import normalize_item_name

DEFAULT_RARITY = 4


class RarityResolver:
    """Looks up the star rarity of an item, falling back to what the source reported."""

    def __init__(self, store: PullStore) -> None:
        self.store = store

    async def _lookup(self, name: str, game: Game) -> ItemNameMapping | None:
        mapping = await self.store.find_item_mapping_exact(name, game)
        if mapping is not None and mapping.rarity is not None:
            return mapping

        mapping = await self.store.find_item_mapping_fuzzy(name, game)
        if mapping is not None and mapping.rarity is not None:
            return mapping
        return None

    async def resolve(
        self, item_name: str, game: Game, fallback_rank: str | int | None = None
    ) -> int:
        """Return the rarity for ``item_name``. Never raises."""
        name = normalize_item_name(item_name)
        if name:
            try:
                mapping = await self._lookup(name, game)
            except SQLAlchemyError:
                logger.warning(f"Rarity lookup failed for {name!r} ({game}), using fallback")
                await self.store.rollback()
                mapping = None

            if mapping is not None and mapping.rarity is not None:
                return mapping.rarity

        return self.fallback(fallback_rank)

    @staticmethod
    def fallback(fallback_rank: str | int | None) -> int:
        if fallback_rank is None:
            return DEFAULT_RARITY
        try:
            return int(fallback_rank)
        except (TypeError, ValueError):
            logger.debug(f"Ignoring non numeric rank {fallback_rank!r}")
            return DEFAULT_RARITY

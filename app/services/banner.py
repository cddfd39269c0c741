from typing import NamedTuple

from loguru import logger

from app.core.enums import BannerType, Game
from app.models.banner import Banner
from app.services.pull_store import PullStore


class BannerInfo(NamedTuple):
    gacha_type: str
    """Banner code used by the game's gacha log API"""
    name: str
    banner_type: BannerType


# Ordered: the API importer walks banners in this order
KNOWN_BANNERS: dict[Game, tuple[BannerInfo, ...]] = {
    Game.GENSHIN: (
        BannerInfo("100", "Beginners' Wish", BannerType.BEGINNER),
        BannerInfo("200", "Wanderlust Invocation", BannerType.STANDARD),
        BannerInfo("301", "Character Event Wish", BannerType.CHARACTER),
        BannerInfo("302", "Weapon Event Wish", BannerType.WEAPON),
        BannerInfo("500", "Chronicled Wish", BannerType.CHRONICLED),
    ),
    Game.HSR: (
        BannerInfo("1", "Stellar Warp", BannerType.STANDARD),
        BannerInfo("2", "Departure Warp", BannerType.BEGINNER),
        BannerInfo("11", "Character Event Warp", BannerType.CHARACTER),
        BannerInfo("12", "Light Cone Event Warp", BannerType.WEAPON),
    ),
}

_BANNER_ID_PREFIX = {Game.GENSHIN: "genshin", Game.HSR: "hsr"}


def make_banner_id(game: Game, gacha_type: str) -> str:
    return f"{_BANNER_ID_PREFIX[game]}_{gacha_type}"


def get_banner_info(game: Game, banner_id: str) -> BannerInfo | None:
    for info in KNOWN_BANNERS[game]:
        if make_banner_id(game, info.gacha_type) == banner_id:
            return info
    return None


class BannerResolver:
    """Maps a banner id to its row, creating it the first time a pull references it."""

    def __init__(self, store: PullStore) -> None:
        self.store = store
        self._cache: dict[tuple[str, Game], Banner] = {}

    async def resolve(self, banner_id: str, game: Game, known_name: str | None = None) -> Banner:
        key = (banner_id, game)
        if key in self._cache:
            return self._cache[key]

        info = get_banner_info(game, banner_id)
        if info is not None:
            defaults = {"banner_name": info.name, "banner_type": info.banner_type}
        else:
            logger.warning(f"Unknown banner {banner_id} for {game}, creating it as standard")
            defaults = {"banner_name": known_name or banner_id, "banner_type": BannerType.STANDARD}

        banner = await self.store.find_or_create_banner(banner_id, game, defaults)
        self._cache[key] = banner
        return banner

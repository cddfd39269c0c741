"""Reads pull histories exported by browser wish trackers (paimon.moe style JSON)."""

import json
from collections.abc import Sequence
from types import TracebackType
from typing import Any, Self

from loguru import logger

from app.core.enums import Game
from app.core.exceptions import UnsupportedExportError
from app.schemas.gacha import RawPull
from app.services.banner import make_banner_id
from app.services.fetcher import PageCallback, parse_source_time, sort_chronologically

ENVELOPE_KEY = "default"

# Export tag -> banner gacha type, in import order
EXPORT_BANNER_TAGS: dict[Game, dict[str, str]] = {
    Game.GENSHIN: {
        "wish-counter-beginners": "100",
        "beginner": "100",
        "wish-counter-standard": "200",
        "standard": "200",
        "wish-counter-character-event": "301",
        "character": "301",
        "wish-counter-weapon-event": "302",
        "weapon": "302",
        "lightcone": "302",
        "wish-counter-chronicled": "500",
        "chronicled": "500",
    },
    Game.HSR: {
        "standard": "1",
        "beginner": "2",
        "character": "11",
        "lightcone": "12",
        "weapon": "12",
    },
}

LEGENDARY_PITY_HINT = 70
RARE_PITY_HINT = 8


def _unwrap(document: Any) -> dict[str, Any]:
    if not isinstance(document, dict):
        msg = "Export must be a JSON object"
        raise UnsupportedExportError(msg)

    envelope = document.get(ENVELOPE_KEY)
    if isinstance(envelope, dict):
        return envelope
    return document


def _banner_pulls(value: Any) -> list[Any] | None:
    """Accept both ``[...]`` and ``{"pulls": [...]}`` banner entries."""
    if isinstance(value, list):
        return value
    if isinstance(value, dict) and isinstance(value.get("pulls"), list):
        return value["pulls"]
    return None


def _rank_hint(pull: dict[str, Any]) -> str:
    # Exports carry no rarity, guess one from the pity the tracker recorded
    pity = pull.get("pity")
    pity = pity if isinstance(pity, int) else 0
    if pull.get("rate") == 1 or pity >= LEGENDARY_PITY_HINT:
        return "5"
    if pity >= RARE_PITY_HINT:
        return "4"
    return "3"


def _item_type(raw_type: Any) -> str:
    if isinstance(raw_type, str) and raw_type.lower() in {"character", "角色"}:
        return "Character"
    return "Weapon"


def _to_raw_pull(banner_id: str, pull: Any) -> RawPull:
    if not isinstance(pull, dict):
        return RawPull(banner_code=banner_id, item_name="")

    name = pull.get("name") or pull.get("item_id") or pull.get("id") or ""
    return RawPull(
        # export ids name the item, not the pull
        external_id=None,
        banner_code=banner_id,
        item_name=str(name),
        item_type=_item_type(pull.get("type")),
        rank_hint=_rank_hint(pull),
        time=parse_source_time(pull.get("time")),
        is_featured=pull.get("rate") == 1,
    )


class ExportFileSource:
    """Serves pulls from an uploaded export file, parsed eagerly so bad files fail fast."""

    def __init__(self, game: Game, content: bytes | str) -> None:
        self.game = game
        self._pulls = self._parse(game, content)

    @staticmethod
    def _parse(game: Game, content: bytes | str) -> dict[str, list[RawPull]]:
        try:
            document = json.loads(content)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            msg = f"File is not valid JSON: {e}"
            raise UnsupportedExportError(msg) from e

        data = _unwrap(document)
        pulls: dict[str, list[RawPull]] = {}
        for tag, gacha_type in EXPORT_BANNER_TAGS[game].items():
            entries = _banner_pulls(data.get(tag))
            if entries is None:
                continue

            banner_id = make_banner_id(game, gacha_type)
            pulls.setdefault(banner_id, []).extend(
                _to_raw_pull(banner_id, entry) for entry in entries
            )
            logger.debug(f"Export tag {tag!r}: {len(entries)} pulls for {banner_id}")

        if not pulls:
            keys = ", ".join(sorted(map(str, data))) or "none"
            msg = f"Unrecognized export format for {game} (top level keys: {keys})"
            raise UnsupportedExportError(msg)

        return {banner_id: sort_chronologically(items) for banner_id, items in pulls.items()}

    @property
    def total(self) -> int:
        return sum(len(items) for items in self._pulls.values())

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        return None

    def banner_ids(self) -> Sequence[str]:
        return list(self._pulls)

    async def fetch_banner(self, banner_id: str, on_page: PageCallback) -> list[RawPull]:
        pulls = self._pulls.get(banner_id, [])
        await on_page(1, len(pulls))
        return list(pulls)

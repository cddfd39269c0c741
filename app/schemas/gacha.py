from datetime import datetime

from pydantic import BaseModel, Field

from app.core.enums import Game


class RawPull(BaseModel):
    """A pull record as read from any source, before normalization and enrichment."""

    external_id: str | None = None
    banner_code: str
    """Internal banner id, e.g. genshin_301"""
    item_name: str
    item_type: str = ""
    rank_hint: str | None = None
    """Rarity reported by the source, used only when no mapping exists"""
    time: datetime | None = None
    is_featured: bool = False


class UrlImportRequest(BaseModel):
    """Request to import pulls from the game's gacha log API."""

    game: Game
    url: str = Field(min_length=1, description="Gacha log URL containing the authkey")


class ImportStarted(BaseModel):
    upload_id: str

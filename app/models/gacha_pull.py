from datetime import datetime

import sqlmodel

from app.core.enums import Game

from ._base import BaseModel


class GachaPull(BaseModel, table=True):
    """One drawn item imported from a game API or an export file."""

    __tablename__: str = "gacha_pulls"
    __table_args__ = (
        sqlmodel.Index("ix_gacha_pulls_scope_time", "user_id", "banner_id", "game", "time"),
    )

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    external_id: str | None = sqlmodel.Field(default=None, max_length=64, nullable=True)
    """Id assigned by the source, not unique across sources"""
    user_id: int = sqlmodel.Field(foreign_key="users.id", index=True)
    banner_id: str = sqlmodel.Field(max_length=64)
    game: Game
    item_name: str = sqlmodel.Field(max_length=200)
    """Normalized item name"""
    item_type: str = sqlmodel.Field(max_length=50)
    rank_type: int = sqlmodel.Field(ge=1, le=6)
    time: datetime
    pity_count: int = sqlmodel.Field(default=1, ge=1)
    """Pulls since the previous top rarity pull on this banner, this one included"""
    is_featured: bool = sqlmodel.Field(default=False)

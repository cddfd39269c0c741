from datetime import datetime

import sqlmodel

from app.core.enums import BannerType, Game

from ._base import BaseModel


class UserStats(BaseModel, table=True):
    """Aggregated pull statistics per banner type, rebuilt after every import."""

    __tablename__: str = "user_stats"
    __table_args__ = (
        sqlmodel.UniqueConstraint("user_id", "game", "banner_type", name="uq_user_stats_scope"),
    )

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    user_id: int = sqlmodel.Field(foreign_key="users.id", index=True)
    game: Game
    banner_type: BannerType
    total_pulls: int = sqlmodel.Field(default=0, ge=0)
    five_star_count: int = sqlmodel.Field(default=0, ge=0)
    four_star_count: int = sqlmodel.Field(default=0, ge=0)
    three_star_count: int = sqlmodel.Field(default=0, ge=0)
    current_pity: int = sqlmodel.Field(default=0, ge=0)
    last_five_star_time: datetime | None = sqlmodel.Field(default=None, nullable=True)

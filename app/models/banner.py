import sqlmodel

from app.core.enums import BannerType, Game

from ._base import BaseModel


class Banner(BaseModel, table=True):
    __tablename__: str = "banners"
    __table_args__ = (sqlmodel.UniqueConstraint("banner_id", "game", name="uq_banner_game"),)

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    banner_id: str = sqlmodel.Field(max_length=64, index=True)
    """Source specific banner code, e.g. genshin_301"""
    game: Game
    banner_name: str = sqlmodel.Field(max_length=100)
    banner_type: BannerType
    image_url: str | None = sqlmodel.Field(default=None, nullable=True)

    def __str__(self) -> str:
        return f"{self.banner_name} ({self.banner_id})"

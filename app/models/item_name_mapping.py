import sqlmodel

from app.core.enums import Game

from ._base import BaseModel


class ItemNameMapping(BaseModel, table=True):
    """Translation and rarity table maintained by admins."""

    __tablename__: str = "item_name_mappings"
    __table_args__ = (
        sqlmodel.UniqueConstraint("english_name", "game", name="uq_item_name_mapping_game"),
    )

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    english_name: str = sqlmodel.Field(max_length=200, index=True)
    """Stored normalized (lower case, single spaced)"""
    translated_name: str = sqlmodel.Field(max_length=200)
    game: Game
    item_type: str = sqlmodel.Field(max_length=50)
    rarity: int | None = sqlmodel.Field(default=None, nullable=True)

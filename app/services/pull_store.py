from collections.abc import Sequence
from datetime import datetime
from typing import Annotated, Any

from fastapi import Depends
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, desc, or_, select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.db import get_db
from app.core.enums import Game
from app.models.banner import Banner
from app.models.gacha_pull import GachaPull
from app.models.item_name_mapping import ItemNameMapping

_UPSERT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


class PullStore:
    """Persistence port used by the import engine."""

    def __init__(self, db: Annotated[AsyncSession, Depends(get_db)]) -> None:
        self.db = db

    async def find_pulls_at(
        self, *, user_id: int, banner_id: str, game: Game, time: datetime, created_before: datetime
    ) -> Sequence[GachaPull]:
        """Pulls at exactly ``time`` that were persisted before ``created_before``."""
        result = await self.db.exec(
            select(GachaPull).where(
                GachaPull.user_id == user_id,
                GachaPull.banner_id == banner_id,
                GachaPull.game == game,
                GachaPull.time == time,
                col(GachaPull.created_at) < created_before,
            )
        )
        return result.all()

    async def list_rank_types_before(
        self, *, user_id: int, banner_id: str, game: Game, before: datetime
    ) -> Sequence[int]:
        """Rarities of every earlier pull on the banner, newest first."""
        result = await self.db.exec(
            select(GachaPull.rank_type)
            .where(
                GachaPull.user_id == user_id,
                GachaPull.banner_id == banner_id,
                GachaPull.game == game,
                col(GachaPull.time) < before,
            )
            .order_by(desc(col(GachaPull.time)), desc(col(GachaPull.id)))
        )
        return result.all()

    async def create_pull(self, pull: GachaPull) -> GachaPull:
        """Persist one pull in its own transaction.

        Raises:
            IntegrityError: If the row violates a constraint, the session is rolled back first.
        """
        self.db.add(pull)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise
        await self.db.refresh(pull)
        return pull

    async def rollback(self) -> None:
        await self.db.rollback()

    async def get_banner(self, banner_id: str, game: Game) -> Banner | None:
        result = await self.db.exec(
            select(Banner).where(Banner.banner_id == banner_id, Banner.game == game)
        )
        return result.first()

    async def find_or_create_banner(
        self, banner_id: str, game: Game, defaults: dict[str, Any]
    ) -> Banner:
        """Atomically insert the banner unless ``(banner_id, game)`` already exists.

        The row comes back detached, so a later rollback of the session does not expire it.
        """
        dialect = self.db.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            msg = f"find_or_create_banner is not supported on {dialect}"
            raise NotImplementedError(msg)

        values = Banner(banner_id=banner_id, game=game, **defaults).model_dump(exclude={"id"})
        statement = (
            insert(Banner)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["banner_id", "game"])
        )
        await self.db.execute(statement)
        await self.db.commit()

        banner = await self.get_banner(banner_id, game)
        if banner is None:
            msg = f"Banner {banner_id} ({game}) vanished right after being created"
            raise RuntimeError(msg)
        self.db.expunge(banner)
        return banner

    async def find_item_mapping_exact(self, name: str, game: Game) -> ItemNameMapping | None:
        result = await self.db.exec(
            select(ItemNameMapping).where(
                ItemNameMapping.english_name == name, ItemNameMapping.game == game
            )
        )
        return result.first()

    async def find_item_mapping_fuzzy(self, name: str, game: Game) -> ItemNameMapping | None:
        """First mapping whose translated name contains ``name``.

        Also matches an English name containing the first word of ``name``.
        """
        first_token = name.split(" ", maxsplit=1)[0]
        result = await self.db.exec(
            select(ItemNameMapping)
            .where(
                ItemNameMapping.game == game,
                or_(
                    col(ItemNameMapping.translated_name).contains(name, autoescape=True),
                    col(ItemNameMapping.english_name).contains(first_token, autoescape=True),
                ),
            )
            .order_by(col(ItemNameMapping.id))
        )
        return result.first()

from collections.abc import Sequence
from typing import Annotated

from fastapi import Depends
from sqlmodel import col, desc, func, select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.db import get_db
from app.core.enums import Game
from app.models.gacha_pull import GachaPull
from app.schemas.common import PaginationData


class GachaPullService:
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db)]) -> None:
        self.db = db

    async def get_pulls(  # noqa: PLR0913
        self,
        *,
        user_id: int,
        game: Game,
        page: int,
        page_size: int,
        banner_id: str | None = None,
        rank_type: int | None = None,
    ) -> tuple[Sequence[GachaPull], PaginationData]:
        offset = (page - 1) * page_size

        filters = [col(GachaPull.user_id) == user_id, col(GachaPull.game) == game]
        if banner_id is not None:
            filters.append(col(GachaPull.banner_id) == banner_id)
        if rank_type is not None:
            filters.append(col(GachaPull.rank_type) == rank_type)

        total_items_result = await self.db.exec(
            select(func.count()).select_from(GachaPull).where(*filters)
        )
        total_items = total_items_result.one()

        result = await self.db.exec(
            select(GachaPull)
            .where(*filters)
            .order_by(desc(col(GachaPull.time)), desc(col(GachaPull.id)))
            .offset(offset)
            .limit(page_size)
        )
        pulls = result.all()

        pagination = PaginationData.for_total(
            page=page, page_size=page_size, total_items=total_items
        )

        return pulls, pagination

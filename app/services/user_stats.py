from collections.abc import Sequence
from datetime import datetime
from typing import Annotated

from fastapi import Depends
from sqlmodel import and_, col, desc, select
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.db import get_db
from app.core.enums import BannerType, Game
from app.models.banner import Banner
from app.models.gacha_pull import GachaPull
from app.models.user_stats import UserStats
from app.services.banner import KNOWN_BANNERS
from app.services.pity import TOP_RARITY


class UserStatsService:
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db)]) -> None:
        self.db = db

    async def get_stats(self, user_id: int, game: Game) -> Sequence[UserStats]:
        result = await self.db.exec(
            select(UserStats)
            .where(UserStats.user_id == user_id, UserStats.game == game)
            .order_by(col(UserStats.banner_type))
        )
        return result.all()

    async def _get_row(self, user_id: int, game: Game, banner_type: BannerType) -> UserStats | None:
        result = await self.db.exec(
            select(UserStats).where(
                UserStats.user_id == user_id,
                UserStats.game == game,
                UserStats.banner_type == banner_type,
            )
        )
        return result.first()

    async def recompute(self, user_id: int, game: Game) -> Sequence[UserStats]:
        """Rebuild the per banner type statistics of a user from their stored pulls."""
        result = await self.db.exec(
            select(GachaPull.rank_type, GachaPull.time, Banner.banner_type)
            .join(
                Banner,
                and_(
                    col(Banner.banner_id) == col(GachaPull.banner_id),
                    col(Banner.game) == col(GachaPull.game),
                ),
            )
            .where(GachaPull.user_id == user_id, GachaPull.game == game)
            .order_by(desc(col(GachaPull.time)), desc(col(GachaPull.id)))
        )

        pulls_by_type: dict[BannerType, list[tuple[int, datetime]]] = {
            info.banner_type: [] for info in KNOWN_BANNERS[game]
        }
        for rank_type, time, banner_type in result.all():
            pulls_by_type.setdefault(banner_type, []).append((rank_type, time))

        rows: list[UserStats] = []
        for banner_type, pulls in pulls_by_type.items():
            # Newest first: pity is the number of pulls before the first top rarity one
            current_pity = 0
            last_five_star_time = None
            for rank_type, time in pulls:
                if rank_type == TOP_RARITY:
                    last_five_star_time = time
                    break
                current_pity += 1

            values = {
                "total_pulls": len(pulls),
                "five_star_count": sum(1 for rank, _ in pulls if rank == TOP_RARITY),
                "four_star_count": sum(1 for rank, _ in pulls if rank == 4),  # noqa: PLR2004
                "three_star_count": sum(1 for rank, _ in pulls if rank == 3),  # noqa: PLR2004
                "current_pity": current_pity,
                "last_five_star_time": last_five_star_time,
            }

            row = await self._get_row(user_id, game, banner_type)
            if row:
                row.sqlmodel_update(values)
            else:
                row = UserStats(user_id=user_id, game=game, banner_type=banner_type, **values)
            self.db.add(row)
            rows.append(row)

        await self.db.commit()
        return rows

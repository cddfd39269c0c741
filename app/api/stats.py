from typing import Annotated

from fastapi import APIRouter, Depends

from app.core.enums import Game
from app.core.security import get_current_user
from app.models.user import User
from app.schemas.common import APIResponse
from app.schemas.stats import BannerTypeStats
from app.services.user_stats import UserStatsService

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/{game}")
async def get_user_stats(
    game: Game,
    service: Annotated[UserStatsService, Depends()],
    user: Annotated[User, Depends(get_current_user)],
) -> APIResponse[list[BannerTypeStats]]:
    """Pull statistics of the current user per banner type, as of their last import."""
    rows = await service.get_stats(user.id, game)
    data = [BannerTypeStats.model_validate(row, from_attributes=True) for row in rows]
    return APIResponse(data=data)

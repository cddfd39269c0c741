from collections.abc import Sequence
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from app.core.enums import Game
from app.core.security import get_current_user
from app.models.gacha_pull import GachaPull
from app.models.user import User
from app.schemas.common import PaginatedResponse
from app.services.gacha_pull import GachaPullService

router = APIRouter(prefix="/pulls", tags=["pulls"])


@router.get("/{game}")
async def get_pulls(  # noqa: PLR0913, PLR0917
    game: Game,
    service: Annotated[GachaPullService, Depends()],
    user: Annotated[User, Depends(get_current_user)],
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
    banner_id: Annotated[str | None, Query(description="Filter by banner id")] = None,
    rank_type: Annotated[int | None, Query(ge=1, le=6, description="Filter by rarity")] = None,
) -> PaginatedResponse[Sequence[GachaPull]]:
    pulls, pagination = await service.get_pulls(
        user_id=user.id,
        game=game,
        page=page,
        page_size=page_size,
        banner_id=banner_id,
        rank_type=rank_type,
    )
    return PaginatedResponse(data=pulls, pagination=pagination)

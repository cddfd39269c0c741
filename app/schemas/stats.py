from datetime import datetime

from pydantic import BaseModel

from app.core.enums import BannerType, Game


class BannerTypeStats(BaseModel):
    game: Game
    banner_type: BannerType
    total_pulls: int
    five_star_count: int
    four_star_count: int
    three_star_count: int
    current_pity: int
    last_five_star_time: datetime | None

from .banner import Banner
from .gacha_pull import GachaPull
from .item_name_mapping import ItemNameMapping
from .user import User
from .user_stats import UserStats

__all__ = ("Banner", "GachaPull", "ItemNameMapping", "User", "UserStats")

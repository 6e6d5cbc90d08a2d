# 全モデルをインポート (create_all用)
from homelist.models.user import User
from homelist.models.plan import SubscriptionPlan
from homelist.models.subscription import Subscription
from homelist.models.house import House
from homelist.models.room import Room
from homelist.models.item import Item
from homelist.models.system_log import SystemLog

__all__ = [
    "User",
    "SubscriptionPlan",
    "Subscription",
    "House",
    "Room",
    "Item",
    "SystemLog",
]

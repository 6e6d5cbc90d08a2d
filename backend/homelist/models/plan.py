from sqlalchemy import Column, Integer, String, Boolean, Text, DateTime, func
from homelist.core.database import Base

# 上限値の「無制限」
UNLIMITED = -1


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(50), unique=True, nullable=False, comment="プランキー (free/trial/basic/pro/premium)")
    display_name = Column(String(255), nullable=False, comment="表示名")
    description = Column(Text, nullable=True)
    price = Column(Integer, nullable=False, default=0, comment="料金 (セント)")

    # 利用上限 (-1 = 無制限)
    max_houses = Column(Integer, nullable=False, default=UNLIMITED)
    max_rooms_per_house = Column(Integer, nullable=False, default=UNLIMITED)
    max_items_per_room = Column(Integer, nullable=False, default=UNLIMITED)

    is_active = Column(Boolean, nullable=False, default=True)
    allow_trial = Column(Boolean, nullable=False, default=False, comment="トライアル元プランにできるか")

    # 並び順
    sort_order = Column(Integer, nullable=False, default=0, comment="表示順（小さいほど上）")

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

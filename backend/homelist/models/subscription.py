from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum as SAEnum, ForeignKey, func
from homelist.core.database import Base

# ユーザーごとに高々1件のみ許される状態
ACTIVE_STATUSES = ("ACTIVE", "TRIAL")


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id", ondelete="RESTRICT"), nullable=False, index=True)
    status = Column(
        SAEnum("ACTIVE", "TRIAL", "CANCELED", name="subscription_status"),
        nullable=False,
        default="ACTIVE",
        index=True,
    )
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True)
    trial_ends_at = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    external_subscription_id = Column(String(255), nullable=True, unique=True, comment="決済ゲートウェイ側ID")
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

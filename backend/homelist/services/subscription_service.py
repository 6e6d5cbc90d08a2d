"""購読ライフサイクル

ユーザーごとに ACTIVE/TRIAL の購読は高々1件。新しい購読を作る操作は、
既存の ACTIVE/TRIAL を CANCELED にしてから作成する (同一トランザクション)。
"""
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.orm import Session

from homelist.core.clock import utcnow, add_years
from homelist.core.config import settings
from homelist.core.database import atomic, refresh
from homelist.core.exceptions import NotFoundError, InvalidPlanError, ValidationError
from homelist.core.logging import get_logger
from homelist.models.plan import SubscriptionPlan
from homelist.models.subscription import Subscription, ACTIVE_STATUSES
from homelist.models.user import User
from homelist.services import plan_service
from homelist.services.system_log_service import record_event

logger = get_logger(__name__)


def lock_user(db: Session, user_id: int) -> User:
    """ユーザー行をロックして取得 (同一ユーザーへの購読変更を直列化)"""
    user = db.query(User).filter(User.id == user_id).with_for_update().first()
    if not user:
        raise NotFoundError("ユーザーが見つかりません", user_id=user_id)
    return user


def supersede_active_subscriptions(
    db: Session,
    user_id: int,
    now: datetime,
    cancel_at_period_end: bool = False,
) -> list[Subscription]:
    """既存の ACTIVE/TRIAL 購読を CANCELED にする (commitしない)"""
    subs = db.query(Subscription).filter(
        Subscription.user_id == user_id,
        Subscription.status.in_(ACTIVE_STATUSES),
    ).all()
    for sub in subs:
        sub.status = "CANCELED"
        if cancel_at_period_end:
            sub.cancel_at_period_end = True
        sub.updated_at = now
    if subs:
        db.flush()
        logger.info(f"既存購読を終了: user_id={user_id}, subscription_ids={[s.id for s in subs]}")
    return subs


def get_current_subscription(db: Session, user_id: int) -> Optional[Subscription]:
    """現在の購読 (ACTIVE/TRIAL のうち最新)"""
    return db.query(Subscription).filter(
        Subscription.user_id == user_id,
        Subscription.status.in_(ACTIVE_STATUSES),
    ).order_by(Subscription.created_at.desc(), Subscription.id.desc()).first()


def list_subscriptions(db: Session, user_id: int) -> list[Subscription]:
    """購読履歴 (新しい順)"""
    return db.query(Subscription).filter(
        Subscription.user_id == user_id,
    ).order_by(Subscription.created_at.desc(), Subscription.id.desc()).all()


def get_subscription_info(db: Session, user_id: int, now: Optional[datetime] = None) -> dict:
    """購読状況

    has_active_subscription は status == ACTIVE のときのみTrue。
    トライアル中 (TRIAL) はプラン上限は適用されるが、ここではFalseになる。
    """
    from homelist.services import trial_service

    now = now or utcnow()
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("ユーザーが見つかりません", user_id=user_id)

    sub = get_current_subscription(db, user_id)
    plan = None
    if sub:
        plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.id == sub.plan_id).first()

    return {
        "has_active_subscription": sub is not None and sub.status == "ACTIVE",
        **trial_service.get_trial_status(user, now),
        "current_plan": plan,
        "subscription": sub,
        "requires_upgrade": user.requires_upgrade,
    }


def assign_plan(db: Session, user_id: int, plan_id: int, now: Optional[datetime] = None) -> Subscription:
    """プラン割当 (管理者操作)。常に ACTIVE の購読を新規作成"""
    now = now or utcnow()

    with atomic(db):
        user = lock_user(db, user_id)
        plan = plan_service.get_plan_by_id(db, plan_id)
        if not plan.is_active:
            raise InvalidPlanError("プランが無効化されています", plan_id=plan_id)

        canceled = supersede_active_subscriptions(db, user.id, now, cancel_at_period_end=True)

        sub = Subscription(
            user_id=user.id,
            plan_id=plan.id,
            status="ACTIVE",
            current_period_start=now,
            current_period_end=add_years(now, settings.ASSIGNED_PLAN_PERIOD_YEARS),
            cancel_at_period_end=False,
            created_at=now,
            updated_at=now,
        )
        db.add(sub)
        db.flush()
        record_event(
            db, "INFO", "plan_assigned", f"プラン割当: {plan.name}",
            user_id=user.id, plan_id=plan.id, subscription_id=sub.id,
            details={"canceled_subscription_ids": [s.id for s in canceled]},
        )

    refresh(db, sub)
    logger.info(
        f"プラン割当: {plan.name}",
        extra={"user_id": user_id, "plan_id": plan.id, "subscription_id": sub.id, "event_type": "plan_assigned"},
    )
    return sub


def cancel_subscription(
    db: Session,
    user_id: int,
    subscription_id: int,
    now: Optional[datetime] = None,
) -> Subscription:
    """購読キャンセル。キャンセル済みの購読は何もせず返す"""
    now = now or utcnow()

    with atomic(db):
        sub = db.query(Subscription).filter(
            Subscription.id == subscription_id,
            Subscription.user_id == user_id,
        ).with_for_update().first()
        if not sub:
            raise NotFoundError("購読が見つかりません", subscription_id=subscription_id)

        if sub.status == "CANCELED":
            return sub

        sub.status = "CANCELED"
        sub.cancel_at_period_end = True
        sub.updated_at = now
        record_event(
            db, "INFO", "subscription_canceled", "購読キャンセル",
            user_id=user_id, plan_id=sub.plan_id, subscription_id=sub.id,
        )

    refresh(db, sub)
    logger.info("購読キャンセル", extra={"user_id": user_id, "subscription_id": subscription_id})
    return sub


def purge_old_canceled(
    db: Session,
    retention_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """保持期間を過ぎたキャンセル済み購読を物理削除。削除件数を返す"""
    if retention_days is None:
        retention_days = settings.CANCELED_RETENTION_DAYS
    if isinstance(retention_days, bool) or not isinstance(retention_days, int) or retention_days < 0:
        raise ValidationError("保持日数は0以上の整数で指定してください", retention_days=retention_days)

    now = now or utcnow()
    threshold = now - timedelta(days=retention_days)

    with atomic(db):
        count = db.query(Subscription).filter(
            Subscription.status == "CANCELED",
            Subscription.updated_at < threshold,
        ).delete(synchronize_session=False)
        if count:
            record_event(
                db, "INFO", "subscriptions_purged", f"キャンセル済み購読を{count}件削除",
                details={"retention_days": retention_days, "threshold": threshold.isoformat()},
            )

    logger.info(f"キャンセル済み購読削除: {count}件 (保持{retention_days}日)")
    return count

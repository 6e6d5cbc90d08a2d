"""トライアル管理

セルフサービスのトライアルは1ユーザー1回まで (has_used_trial)。
管理者付与はこの制限を受けないが、付与時に has_used_trial はTrueにする。
トライアル期限切れは参照時に判定し、購読ステータスは書き換えない。
"""
import math
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.orm import Session

from homelist.core.clock import utcnow
from homelist.core.config import settings
from homelist.core.database import atomic, refresh
from homelist.core.exceptions import TrialAlreadyUsedError, ValidationError
from homelist.core.logging import get_logger
from homelist.models.subscription import Subscription, ACTIVE_STATUSES
from homelist.models.user import User
from homelist.services import plan_service
from homelist.services.subscription_service import lock_user, supersede_active_subscriptions
from homelist.services.system_log_service import record_event

logger = get_logger(__name__)


def _create_trial_subscription(
    db: Session,
    user: User,
    plan_id: int,
    now: datetime,
    trial_end: datetime,
) -> Subscription:
    sub = Subscription(
        user_id=user.id,
        plan_id=plan_id,
        status="TRIAL",
        trial_ends_at=trial_end,
        current_period_start=now,
        current_period_end=trial_end,
        cancel_at_period_end=False,
        created_at=now,
        updated_at=now,
    )
    db.add(sub)
    db.flush()
    return sub


def start_trial(db: Session, user_id: int, now: Optional[datetime] = None) -> Subscription:
    """トライアル開始 (ユーザー本人)"""
    now = now or utcnow()

    with atomic(db):
        user = lock_user(db, user_id)
        if user.has_used_trial:
            raise TrialAlreadyUsedError("トライアルは既に利用済みです", user_id=user_id)

        trial_plan = plan_service.get_trial_plan(db)
        trial_end = now + timedelta(days=settings.TRIAL_PERIOD_DAYS)

        user.trial_started_at = now
        user.trial_ends_at = trial_end
        user.has_used_trial = True
        user.updated_at = now

        supersede_active_subscriptions(db, user.id, now)
        sub = _create_trial_subscription(db, user, trial_plan.id, now, trial_end)
        record_event(
            db, "INFO", "trial_started", f"トライアル開始: 期限={trial_end.isoformat()}",
            user_id=user.id, plan_id=trial_plan.id, subscription_id=sub.id,
        )

    refresh(db, sub)
    logger.info(
        f"トライアル開始: 期限={trial_end.isoformat()}",
        extra={"user_id": user_id, "subscription_id": sub.id, "event_type": "trial_started"},
    )
    return sub


def grant_or_extend_trial(
    db: Session,
    user_id: int,
    days: int,
    now: Optional[datetime] = None,
) -> tuple[Subscription, bool]:
    """管理者によるトライアル付与・延長。(購読, 延長したか) を返す

    トライアルプランの TRIAL 購読があれば期限のみ更新し、なければ新規作成する。
    """
    if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
        raise ValidationError("日数は1以上の整数で指定してください", days=days)

    now = now or utcnow()
    trial_end = now + timedelta(days=days)

    with atomic(db):
        user = lock_user(db, user_id)
        trial_plan = plan_service.get_trial_plan(db)

        # 既存の開始日時は維持
        if user.trial_started_at is None:
            user.trial_started_at = now
        user.trial_ends_at = trial_end
        user.has_used_trial = True
        user.updated_at = now

        existing = db.query(Subscription).filter(
            Subscription.user_id == user.id,
            Subscription.plan_id == trial_plan.id,
            Subscription.status == "TRIAL",
        ).order_by(Subscription.created_at.desc(), Subscription.id.desc()).first()

        if existing:
            existing.trial_ends_at = trial_end
            existing.current_period_end = trial_end
            existing.updated_at = now
            sub = existing
            event_type = "trial_extended"
        else:
            supersede_active_subscriptions(db, user.id, now)
            sub = _create_trial_subscription(db, user, trial_plan.id, now, trial_end)
            event_type = "trial_granted"

        record_event(
            db, "INFO", event_type, f"管理者トライアル付与: {days}日, 期限={trial_end.isoformat()}",
            user_id=user.id, plan_id=trial_plan.id, subscription_id=sub.id,
            details={"days": days},
        )

    refresh(db, sub)
    extended = existing is not None
    logger.info(f"トライアル{'延長' if extended else '付与'}: {days}日", extra={"user_id": user_id, "subscription_id": sub.id})
    return sub, extended


def get_trial_status(user: User, now: Optional[datetime] = None) -> dict:
    """トライアル状態 (参照時に判定)"""
    now = now or utcnow()
    started = user.trial_started_at is not None
    ends = user.trial_ends_at

    is_on_trial = started and ends is not None and now < ends
    trial_expired = started and ends is not None and now >= ends

    days_left = None
    if is_on_trial:
        days_left = math.ceil((ends - now) / timedelta(days=1))

    return {
        "is_on_trial": is_on_trial,
        "trial_expired": trial_expired,
        "days_left_in_trial": days_left,
        "trial_started_at": user.trial_started_at,
        "trial_ends_at": user.trial_ends_at,
        "has_used_trial": user.has_used_trial,
    }


def should_start_trial(db: Session, user_id: int) -> bool:
    """トライアル未使用かつ有効な購読がなければTrue (登録時の自動開始判定)"""
    user = db.query(User).filter(User.id == user_id).first()
    if not user or user.has_used_trial:
        return False
    has_current = db.query(Subscription).filter(
        Subscription.user_id == user_id,
        Subscription.status.in_(ACTIVE_STATUSES),
    ).count() > 0
    return not has_current

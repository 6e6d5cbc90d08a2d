"""管理者による代理操作

acting_as_admin は認証層 (セッションのロール) で検証済みの値を受け取る。
ここでは再判定せず、その値だけを見て許可・拒否する。
"""
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from homelist.core.exceptions import PermissionDeniedError
from homelist.models.subscription import Subscription
from homelist.services import subscription_service, trial_service


def _require_admin(acting_as_admin: bool):
    if not acting_as_admin:
        raise PermissionDeniedError("管理者権限が必要です")


def force_assign_plan(
    db: Session,
    acting_as_admin: bool,
    user_id: int,
    plan_id: int,
    now: Optional[datetime] = None,
) -> Subscription:
    _require_admin(acting_as_admin)
    return subscription_service.assign_plan(db, user_id, plan_id, now=now)


def force_grant_trial(
    db: Session,
    acting_as_admin: bool,
    user_id: int,
    days: int,
    now: Optional[datetime] = None,
) -> tuple[Subscription, bool]:
    _require_admin(acting_as_admin)
    return trial_service.grant_or_extend_trial(db, user_id, days, now=now)


def force_cancel_subscription(
    db: Session,
    acting_as_admin: bool,
    user_id: int,
    subscription_id: int,
    now: Optional[datetime] = None,
) -> Subscription:
    _require_admin(acting_as_admin)
    return subscription_service.cancel_subscription(db, user_id, subscription_id, now=now)


def force_purge_canceled(
    db: Session,
    acting_as_admin: bool,
    retention_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    _require_admin(acting_as_admin)
    return subscription_service.purge_old_canceled(db, retention_days, now=now)

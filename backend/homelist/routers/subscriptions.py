"""購読ルーター: 購読状況、トライアル開始、履歴、上限チェック"""
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from homelist.core.database import get_db
from homelist.core.rate_limit import limiter, TRIAL_START_RATE_LIMIT
from homelist.models.user import User
from homelist.schemas.plan import PlanInfo
from homelist.schemas.subscription import SubscriptionInfo, SubscriptionStatus
from homelist.services import subscription_service, trial_service, usage_service
from homelist.services.usage_service import LimitDecision
from homelist.routers.deps import require_login

router = APIRouter(prefix="/api/user/subscription", tags=["subscriptions"])


def _build_status(db: Session, user_id: int) -> SubscriptionStatus:
    info = subscription_service.get_subscription_info(db, user_id)
    plan = info.pop("current_plan")
    sub = info.pop("subscription")
    return SubscriptionStatus(
        **info,
        current_plan=PlanInfo.model_validate(plan) if plan else None,
        subscription=SubscriptionInfo.model_validate(sub) if sub else None,
        usage=usage_service.compute_usage(db, user_id),
        limits=usage_service.get_user_limits(db, user_id),
    )


@router.get("", response_model=SubscriptionStatus)
async def get_my_subscription(
    user: User = Depends(require_login),
    db: Session = Depends(get_db),
):
    """購読状況 (トライアル残日数・使用量・上限を含む)"""
    return _build_status(db, user.id)


@router.post("/trial", response_model=SubscriptionStatus, status_code=201)
@limiter.limit(TRIAL_START_RATE_LIMIT)
async def start_my_trial(
    request: Request,
    user: User = Depends(require_login),
    db: Session = Depends(get_db),
):
    """トライアル開始 (1ユーザー1回のみ)"""
    trial_service.start_trial(db, user.id)
    db.expire_all()
    return _build_status(db, user.id)


@router.get("/history", response_model=list[SubscriptionInfo])
async def get_my_history(
    user: User = Depends(require_login),
    db: Session = Depends(get_db),
):
    """購読履歴 (新しい順)"""
    return subscription_service.list_subscriptions(db, user.id)


@router.get("/limits/check", response_model=LimitDecision)
async def check_my_limit(
    dimension: str,
    scope_id: Optional[int] = None,
    increment: int = Query(1, ge=0),
    user: User = Depends(require_login),
    db: Session = Depends(get_db),
):
    """家屋・部屋・品目を追加できるか判定"""
    return usage_service.check_user_limit(db, user.id, dimension, increment, scope_id)

"""管理画面: ユーザー管理 (プラン割当・トライアル付与・購読キャンセル)"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional
from pydantic import BaseModel

from homelist.core.database import get_db
from homelist.models.user import User
from homelist.models.subscription import Subscription, ACTIVE_STATUSES
from homelist.models.plan import SubscriptionPlan
from homelist.schemas.subscription import AssignPlanRequest, GrantTrialRequest, SubscriptionInfo
from homelist.services import admin_service, subscription_service, trial_service, usage_service
from homelist.services.system_log_service import record_event
from homelist.routers.deps import require_admin, admin_flag
from homelist.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/admin/users", tags=["admin-users"])


class UpdateUserRole(BaseModel):
    role: str  # "USER" or "ADMIN"


@router.get("")
async def list_users(
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    search: Optional[str] = None,
    role: Optional[str] = None,
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    """ユーザー一覧"""
    q = db.query(User)
    if search:
        q = q.filter((User.email.contains(search)) | (User.name.contains(search)))
    if role:
        q = q.filter(User.role == role)

    total = q.count()
    users = q.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * per_page).limit(per_page).all()

    # 各ユーザーの有効な購読を一括取得
    user_ids = [u.id for u in users]
    subs = (
        db.query(Subscription.user_id, Subscription.status, SubscriptionPlan.id, SubscriptionPlan.name)
        .join(SubscriptionPlan, Subscription.plan_id == SubscriptionPlan.id)
        .filter(
            Subscription.user_id.in_(user_ids),
            Subscription.status.in_(ACTIVE_STATUSES),
        )
        .all()
    ) if user_ids else []

    plan_map: dict[int, dict] = {}
    for uid, status, pid, pname in subs:
        plan_map[uid] = {"plan_id": pid, "plan_name": pname, "status": status}

    return {
        "total": total,
        "page": page,
        "per_page": per_page,
        "users": [
            {
                "id": u.id,
                "email": u.email,
                "name": u.name,
                "role": u.role,
                "is_active": u.is_active,
                "has_used_trial": u.has_used_trial,
                "requires_upgrade": u.requires_upgrade,
                "created_at": u.created_at.isoformat() if u.created_at else None,
                "current": plan_map.get(u.id),
            }
            for u in users
        ],
    }


@router.get("/{user_id}")
async def get_user(user_id: int, db: Session = Depends(get_db), _=Depends(require_admin)):
    """ユーザー詳細 (購読履歴・使用量を含む)"""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="ユーザーが見つかりません")

    subs = subscription_service.list_subscriptions(db, user_id)

    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "is_active": user.is_active,
        "requires_upgrade": user.requires_upgrade,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "trial": {
            k: (v.isoformat() if hasattr(v, "isoformat") else v)
            for k, v in trial_service.get_trial_status(user).items()
        },
        "usage": usage_service.compute_usage(db, user_id).model_dump(),
        "limits": usage_service.get_user_limits(db, user_id).model_dump(),
        "subscriptions": [SubscriptionInfo.model_validate(s).model_dump(mode="json") for s in subs],
    }


@router.put("/{user_id}/role")
async def update_role(
    user_id: int,
    data: UpdateUserRole,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """ロール変更"""
    if data.role not in ("USER", "ADMIN"):
        raise HTTPException(status_code=400, detail="無効なロールです")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="ユーザーが見つかりません")
    if user.id == admin.id and data.role != "ADMIN":
        raise HTTPException(status_code=400, detail="自分自身の管理者権限は外せません")

    user.role = data.role
    record_event(
        db, "INFO", "role_changed", f"ロール変更: {data.role}",
        user_id=user.id, details={"admin_id": admin.id},
    )
    db.commit()
    logger.info(f"ロール変更: {data.role} (admin_id={admin.id})", extra={"user_id": user_id, "event_type": "role_changed"})
    return {"message": f"ロールを{data.role}に変更しました"}


@router.post("/{user_id}/subscription", response_model=SubscriptionInfo, status_code=201)
async def assign_plan(
    user_id: int,
    data: AssignPlanRequest,
    db: Session = Depends(get_db),
    acting_as_admin: bool = Depends(admin_flag),
):
    """プラン割当 (既存の購読はキャンセルされる)"""
    return admin_service.force_assign_plan(db, acting_as_admin, user_id, data.plan_id)


@router.delete("/{user_id}/subscription/{subscription_id}", response_model=SubscriptionInfo)
async def cancel_subscription(
    user_id: int,
    subscription_id: int,
    db: Session = Depends(get_db),
    acting_as_admin: bool = Depends(admin_flag),
):
    """購読キャンセル"""
    return admin_service.force_cancel_subscription(db, acting_as_admin, user_id, subscription_id)


@router.post("/{user_id}/trial")
async def grant_trial(
    user_id: int,
    data: GrantTrialRequest,
    db: Session = Depends(get_db),
    acting_as_admin: bool = Depends(admin_flag),
):
    """トライアル付与・延長"""
    sub, extended = admin_service.force_grant_trial(db, acting_as_admin, user_id, data.days)
    return {
        "message": "トライアルを延長しました" if extended else "トライアルを付与しました",
        "extended": extended,
        "subscription": SubscriptionInfo.model_validate(sub).model_dump(mode="json"),
    }


@router.post("/{user_id}/usage/analyze")
async def analyze_usage(
    user_id: int,
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    """既存データのプラン上限超過を判定 (超過時は requires_upgrade を立てる)"""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="ユーザーが見つかりません")

    reasons = usage_service.analyze_usage(db, user_id)
    return {"requires_upgrade": bool(reasons) or user.requires_upgrade, "reasons": reasons}

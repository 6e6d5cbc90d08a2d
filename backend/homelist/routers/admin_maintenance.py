"""管理画面: 購読統計とキャンセル済み購読の削除"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import func as sa_func

from homelist.core.config import settings
from homelist.core.database import get_db
from homelist.models.user import User
from homelist.models.subscription import Subscription
from homelist.schemas.subscription import PurgeRequest
from homelist.services import admin_service
from homelist.routers.deps import require_admin, admin_flag

router = APIRouter(prefix="/api/admin/maintenance", tags=["admin-maintenance"])


@router.get("/stats")
async def get_stats(db: Session = Depends(get_db), _=Depends(require_admin)):
    """購読ステータス別件数"""
    rows = (
        db.query(Subscription.status, sa_func.count(Subscription.id))
        .group_by(Subscription.status)
        .all()
    )
    counts = {"ACTIVE": 0, "TRIAL": 0, "CANCELED": 0}
    counts.update({s: c for s, c in rows})

    total_users = db.query(sa_func.count(User.id)).filter(User.role == "USER").scalar()
    upgrade_required = db.query(sa_func.count(User.id)).filter(User.requires_upgrade == True).scalar()

    return {
        "subscriptions": counts,
        "users": {"total": total_users, "requires_upgrade": upgrade_required},
        "canceled_retention_days": settings.CANCELED_RETENTION_DAYS,
    }


@router.post("/purge-subscriptions")
async def purge_subscriptions(
    data: PurgeRequest,
    db: Session = Depends(get_db),
    acting_as_admin: bool = Depends(admin_flag),
):
    """保持期間を過ぎたキャンセル済み購読を削除"""
    count = admin_service.force_purge_canceled(db, acting_as_admin, data.retention_days)
    return {"deleted": count, "message": f"{count}件の購読を削除しました"}

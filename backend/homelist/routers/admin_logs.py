"""管理画面: 監査ログの参照と削除"""
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from homelist.core.database import get_db
from homelist.routers.deps import require_admin
from homelist.schemas.system_log import SystemLogPage
from homelist.services import system_log_service

router = APIRouter(prefix="/api/admin/logs", tags=["admin-logs"])


@router.get("", response_model=SystemLogPage)
async def list_logs(
    level: Optional[str] = None,
    event_type: Optional[str] = None,
    user_id: Optional[int] = None,
    plan_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    """購読操作の監査ログ (新しい順)"""
    total, logs = system_log_service.search_logs(
        db,
        level=level,
        event_type=event_type,
        user_id=user_id,
        plan_id=plan_id,
        since=datetime.combine(start_date, datetime.min.time()) if start_date else None,
        until=datetime.combine(end_date, datetime.max.time()) if end_date else None,
        offset=(page - 1) * per_page,
        limit=per_page,
    )
    return {"total": total, "page": page, "per_page": per_page, "logs": logs}


@router.delete("/bulk-delete")
async def bulk_delete_logs(
    before_date: date,
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    """指定日の終わりまでのログを一括削除"""
    threshold = datetime.combine(before_date, datetime.max.time())
    count = system_log_service.delete_logs_before(db, threshold)
    return {"deleted": count, "message": f"{count}件のログを削除しました"}

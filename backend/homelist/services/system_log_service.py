"""システムログ (監査) 記録"""
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session

from homelist.core.database import atomic
from homelist.core.logging import get_logger
from homelist.models.system_log import SystemLog

logger = get_logger(__name__)


def record_event(
    db: Session,
    level: str,
    event_type: str,
    message: str,
    user_id: Optional[int] = None,
    plan_id: Optional[int] = None,
    subscription_id: Optional[int] = None,
    details: Optional[dict] = None,
) -> SystemLog:
    """システムログを追加 (commitしない。呼び出し元のトランザクションに含める)"""
    log = SystemLog(
        level=level,
        event_type=event_type,
        user_id=user_id,
        plan_id=plan_id,
        subscription_id=subscription_id,
        message=message,
        details=details,
    )
    db.add(log)
    return log


def search_logs(
    db: Session,
    level: Optional[str] = None,
    event_type: Optional[str] = None,
    user_id: Optional[int] = None,
    plan_id: Optional[int] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple[int, list[SystemLog]]:
    """条件に合うログの (総件数, 新しい順のページ)"""
    filters = []
    if level:
        filters.append(SystemLog.level == level)
    if event_type:
        filters.append(SystemLog.event_type == event_type)
    if user_id is not None:
        filters.append(SystemLog.user_id == user_id)
    if plan_id is not None:
        filters.append(SystemLog.plan_id == plan_id)
    if since is not None:
        filters.append(SystemLog.created_at >= since)
    if until is not None:
        filters.append(SystemLog.created_at <= until)

    q = db.query(SystemLog).filter(*filters)
    total = q.count()
    rows = q.order_by(SystemLog.created_at.desc(), SystemLog.id.desc()).offset(offset).limit(limit).all()
    return total, rows


def delete_logs_before(db: Session, threshold: datetime) -> int:
    """threshold 以前のログを削除。削除件数を返す"""
    with atomic(db):
        count = db.query(SystemLog).filter(
            SystemLog.created_at <= threshold,
        ).delete(synchronize_session=False)
    logger.info(f"システムログ削除: {count}件 (〜{threshold.isoformat()})")
    return count

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from homelist.core.database import check_db_connection, get_db
from homelist.core.exceptions import ConfigurationError
from homelist.core.redis import check_redis_connection
from homelist.services import plan_service

router = APIRouter()


@router.get("/health")
@router.get("/api/health")
async def health_check(db: Session = Depends(get_db)):
    """ヘルスチェック (DB・Redis・トライアルプラン登録状況)"""
    db_ok = check_db_connection()
    redis_ok = await check_redis_connection()

    trial_plan_ok = False
    if db_ok:
        try:
            plan_service.get_trial_plan(db)
            trial_plan_ok = True
        except ConfigurationError:
            trial_plan_ok = False

    status = "ok" if (db_ok and redis_ok and trial_plan_ok) else "degraded"

    return {
        "status": status,
        "db": "connected" if db_ok else "disconnected",
        "redis": "connected" if redis_ok else "disconnected",
        "trial_plan": "configured" if trial_plan_ok else "missing",
    }

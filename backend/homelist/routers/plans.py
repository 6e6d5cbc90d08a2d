"""公開プランAPI"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from homelist.core.database import get_db
from homelist.schemas.plan import PlanInfo
from homelist.services import plan_service

router = APIRouter(prefix="/api/plans", tags=["plans"])


@router.get("", response_model=list[PlanInfo])
async def list_public_plans(db: Session = Depends(get_db)):
    """公開プラン一覧 (有効なプランのみ、表示順)"""
    return plan_service.list_active_plans(db)


@router.get("/{name}", response_model=PlanInfo)
async def get_plan_detail(name: str, db: Session = Depends(get_db)):
    """プラン詳細"""
    return plan_service.get_plan(db, name)

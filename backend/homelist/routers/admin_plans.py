"""管理画面: プランCRUD"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from homelist.core.database import get_db
from homelist.schemas.plan import PlanCreate, PlanUpdate, PlanInfo
from homelist.services import plan_service
from homelist.routers.deps import require_admin

router = APIRouter(prefix="/api/admin/plans", tags=["admin-plans"])


def _plan_dict(db: Session, plan) -> dict:
    total, active = plan_service.count_subscribers(db, plan.id)
    return {
        **PlanInfo.model_validate(plan).model_dump(mode="json"),
        "subscription_count": total,
        "active_subscription_count": active,
    }


@router.get("")
async def list_plans(db: Session = Depends(get_db), _=Depends(require_admin)):
    """プラン一覧 (無効なプランを含む)"""
    return [_plan_dict(db, p) for p in plan_service.list_plans(db)]


@router.get("/{plan_id}")
async def get_plan(plan_id: int, db: Session = Depends(get_db), _=Depends(require_admin)):
    """プラン詳細"""
    plan = plan_service.get_plan_by_id(db, plan_id)
    return _plan_dict(db, plan)


@router.post("", status_code=201)
async def create_plan(data: PlanCreate, db: Session = Depends(get_db), _=Depends(require_admin)):
    """プラン作成"""
    plan = plan_service.create_plan(db, **data.model_dump())
    return _plan_dict(db, plan)


@router.put("/{plan_id}")
async def update_plan(
    plan_id: int,
    data: PlanUpdate,
    db: Session = Depends(get_db),
    _=Depends(require_admin),
):
    """プラン更新 (name は変更不可)"""
    changes = {
        k: v for k, v in data.model_dump(exclude_unset=True).items()
        if v is not None or k == "description"
    }
    plan = plan_service.update_plan(db, plan_id, **changes)
    return _plan_dict(db, plan)


@router.delete("/{plan_id}")
async def delete_plan(plan_id: int, db: Session = Depends(get_db), _=Depends(require_admin)):
    """プラン削除 (購読が1件でもあれば削除不可。無効化を使う)"""
    plan_service.delete_plan(db, plan_id)
    return {"message": "プランを削除しました"}

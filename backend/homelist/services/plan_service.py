"""プランカタログ"""
from typing import Optional
from sqlalchemy import func
from sqlalchemy.orm import Session

from homelist.core.config import settings
from homelist.core.database import atomic
from homelist.core.exceptions import NotFoundError, ValidationError, ConflictError, ConfigurationError
from homelist.core.logging import get_logger
from homelist.models.plan import SubscriptionPlan, UNLIMITED
from homelist.models.subscription import Subscription
from homelist.services.system_log_service import record_event

logger = get_logger(__name__)

LIMIT_FIELDS = ("max_houses", "max_rooms_per_house", "max_items_per_room")
EDITABLE_FIELDS = (
    "display_name",
    "description",
    "price",
    "max_houses",
    "max_rooms_per_house",
    "max_items_per_room",
    "is_active",
    "allow_trial",
    "sort_order",
)


def get_plan(db: Session, name: str) -> SubscriptionPlan:
    """有効なプランを名前で取得"""
    plan = db.query(SubscriptionPlan).filter(
        SubscriptionPlan.name == name,
        SubscriptionPlan.is_active == True,
    ).first()
    if not plan:
        raise NotFoundError("プランが見つかりません", name=name)
    return plan


def get_plan_by_id(db: Session, plan_id: int) -> SubscriptionPlan:
    """プランをIDで取得 (無効プランも含む)"""
    plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).first()
    if not plan:
        raise NotFoundError("プランが見つかりません", plan_id=plan_id)
    return plan


def get_trial_plan(db: Session) -> SubscriptionPlan:
    """トライアル用プラン。未登録は設定不備"""
    plan = db.query(SubscriptionPlan).filter(
        SubscriptionPlan.name == settings.TRIAL_PLAN_NAME,
        SubscriptionPlan.is_active == True,
    ).first()
    if not plan:
        logger.error(f"トライアルプランが未登録です: name={settings.TRIAL_PLAN_NAME}")
        raise ConfigurationError("トライアルプランが見つかりません", name=settings.TRIAL_PLAN_NAME)
    return plan


def list_active_plans(db: Session) -> list[SubscriptionPlan]:
    """公開プラン一覧 (sort_order昇順、同順はID昇順)"""
    return db.query(SubscriptionPlan).filter(
        SubscriptionPlan.is_active == True,
    ).order_by(SubscriptionPlan.sort_order.asc(), SubscriptionPlan.id.asc()).all()


def list_plans(db: Session) -> list[SubscriptionPlan]:
    """全プラン一覧 (管理画面用)"""
    return db.query(SubscriptionPlan).order_by(
        SubscriptionPlan.sort_order.asc(), SubscriptionPlan.id.asc()
    ).all()


def count_subscribers(db: Session, plan_id: int) -> tuple[int, int]:
    """(全購読数, ACTIVE購読数)"""
    rows = db.query(Subscription.status, func.count(Subscription.id)).filter(
        Subscription.plan_id == plan_id,
    ).group_by(Subscription.status).all()
    counts = {status: count for status, count in rows}
    return sum(counts.values()), counts.get("ACTIVE", 0)


def _validate_fields(fields: dict):
    for key in LIMIT_FIELDS:
        value = fields.get(key)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{key}は整数で指定してください", field=key)
        if value < UNLIMITED:
            raise ValidationError(f"{key}は0以上、または無制限(-1)を指定してください", field=key)

    price = fields.get("price")
    if price is not None and (isinstance(price, bool) or not isinstance(price, int) or price < 0):
        raise ValidationError("価格は0以上の整数で指定してください", field="price")

    if "display_name" in fields and not (fields["display_name"] or "").strip():
        raise ValidationError("表示名は必須です", field="display_name")


def create_plan(
    db: Session,
    name: str,
    display_name: str,
    price: int = 0,
    max_houses: int = UNLIMITED,
    max_rooms_per_house: int = UNLIMITED,
    max_items_per_room: int = UNLIMITED,
    description: Optional[str] = None,
    is_active: bool = True,
    allow_trial: bool = False,
    sort_order: int = 0,
) -> SubscriptionPlan:
    """プラン作成"""
    name = (name or "").strip()
    if not name:
        raise ValidationError("プラン名は必須です", field="name")
    _validate_fields({
        "display_name": display_name,
        "price": price,
        "max_houses": max_houses,
        "max_rooms_per_house": max_rooms_per_house,
        "max_items_per_room": max_items_per_room,
    })

    with atomic(db):
        if db.query(SubscriptionPlan).filter(SubscriptionPlan.name == name).first():
            raise ConflictError("同じ名前のプランが既に存在します", name=name)

        plan = SubscriptionPlan(
            name=name,
            display_name=display_name.strip(),
            description=description,
            price=price,
            max_houses=max_houses,
            max_rooms_per_house=max_rooms_per_house,
            max_items_per_room=max_items_per_room,
            is_active=is_active,
            allow_trial=allow_trial,
            sort_order=sort_order,
        )
        db.add(plan)
        db.flush()
        record_event(db, "INFO", "plan_created", f"プラン作成: {name}", plan_id=plan.id)

    db.refresh(plan)
    logger.info(f"プラン作成: plan_id={plan.id}, name={name}")
    return plan


def update_plan(db: Session, plan_id: int, **changes) -> SubscriptionPlan:
    """プラン更新 (nameは変更不可)"""
    unknown = set(changes) - set(EDITABLE_FIELDS) - {"name"}
    if unknown:
        raise ValidationError(f"更新できない項目です: {', '.join(sorted(unknown))}")

    with atomic(db):
        plan = get_plan_by_id(db, plan_id)
        new_name = changes.pop("name", None)
        if new_name is not None and new_name != plan.name:
            raise ValidationError("プラン名は変更できません", field="name")

        _validate_fields(changes)
        for key, value in changes.items():
            setattr(plan, key, value)
        record_event(
            db, "INFO", "plan_updated", f"プラン更新: {plan.name}",
            plan_id=plan.id, details={"fields": sorted(changes)},
        )

    db.refresh(plan)
    logger.info(f"プラン更新: plan_id={plan.id}, fields={sorted(changes)}")
    return plan


def delete_plan(db: Session, plan_id: int) -> None:
    """プラン削除。購読から参照されている間は削除不可 (無効化を使う)"""
    with atomic(db):
        plan = get_plan_by_id(db, plan_id)
        total, _ = count_subscribers(db, plan_id)
        if total > 0:
            raise ConflictError(
                "購読が存在するプランは削除できません。無効化してください",
                plan_id=plan_id,
                subscriber_count=total,
            )
        name = plan.name
        db.delete(plan)
        record_event(db, "INFO", "plan_deleted", f"プラン削除: {name}")

    logger.info(f"プラン削除: plan_id={plan_id}, name={name}")

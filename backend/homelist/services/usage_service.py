"""利用状況の集計とプラン上限判定

check_limit は判定のみ行う (作成処理そのものはブロックしない)。
上限値が負 (-1) のときは無制限。
"""
from typing import Optional
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from homelist.core.exceptions import NotFoundError, ValidationError
from homelist.core.logging import get_logger
from homelist.core.database import atomic
from homelist.models.house import House
from homelist.models.item import Item
from homelist.models.plan import SubscriptionPlan
from homelist.models.room import Room
from homelist.models.user import User
from homelist.services.subscription_service import get_current_subscription
from homelist.services.system_log_service import record_event

logger = get_logger(__name__)

HOUSES = "houses"
ROOMS_PER_HOUSE = "rooms_per_house"
ITEMS_PER_ROOM = "items_per_room"

# 判定軸 → プランの上限項目
DIMENSIONS = {
    HOUSES: "max_houses",
    ROOMS_PER_HOUSE: "max_rooms_per_house",
    ITEMS_PER_ROOM: "max_items_per_room",
}

_DIMENSION_LABELS = {
    HOUSES: "家屋数",
    ROOMS_PER_HOUSE: "1家屋あたりの部屋数",
    ITEMS_PER_ROOM: "1部屋あたりの品目数",
}


class UsageSnapshot(BaseModel):
    house_count: int = 0
    room_count: int = 0
    item_count: int = 0
    rooms_per_house: dict[int, int] = {}
    items_per_room: dict[int, int] = {}


class PlanLimits(BaseModel):
    plan_name: Optional[str] = None
    max_houses: int = 0
    max_rooms_per_house: int = 0
    max_items_per_room: int = 0


class LimitDecision(BaseModel):
    allowed: bool
    dimension: str
    limit: Optional[int] = None
    current: int = 0
    requested: int = 0
    reason: Optional[str] = None


def compute_usage(db: Session, user_id: int) -> UsageSnapshot:
    """家屋 → 部屋 → 品目 を集計 (キャッシュなし)"""
    if not db.query(User.id).filter(User.id == user_id).first():
        raise NotFoundError("ユーザーが見つかりません", user_id=user_id)

    house_ids = [h.id for h in db.query(House.id).filter(House.user_id == user_id).all()]
    rooms = (
        db.query(Room.id, Room.house_id)
        .join(House, Room.house_id == House.id)
        .filter(House.user_id == user_id)
        .all()
    )
    item_counts = (
        db.query(Item.room_id, func.count(Item.id))
        .join(Room, Item.room_id == Room.id)
        .join(House, Room.house_id == House.id)
        .filter(House.user_id == user_id)
        .group_by(Item.room_id)
        .all()
    )

    rooms_per_house = {house_id: 0 for house_id in house_ids}
    for room_id, house_id in rooms:
        rooms_per_house[house_id] = rooms_per_house.get(house_id, 0) + 1

    items_per_room = {room_id: 0 for room_id, _ in rooms}
    for room_id, count in item_counts:
        items_per_room[room_id] = count

    return UsageSnapshot(
        house_count=len(house_ids),
        room_count=len(rooms),
        item_count=sum(items_per_room.values()),
        rooms_per_house=rooms_per_house,
        items_per_room=items_per_room,
    )


def _current_count(usage: UsageSnapshot, dimension: str, scope_id: Optional[int]) -> int:
    if dimension == HOUSES:
        return usage.house_count
    if scope_id is None:
        scope = "家屋ID" if dimension == ROOMS_PER_HOUSE else "部屋ID"
        raise ValidationError(f"{scope}を指定してください", dimension=dimension)
    if dimension == ROOMS_PER_HOUSE:
        return usage.rooms_per_house.get(scope_id, 0)
    return usage.items_per_room.get(scope_id, 0)


def check_limit(
    usage: UsageSnapshot,
    plan,
    dimension: str,
    increment: int = 1,
    scope_id: Optional[int] = None,
) -> LimitDecision:
    """現在の利用数 + increment が上限以内か判定

    plan は max_houses / max_rooms_per_house / max_items_per_room を持つオブジェクト
    (SubscriptionPlan または PlanLimits)。
    """
    if dimension not in DIMENSIONS:
        raise ValidationError("不明な判定項目です", dimension=dimension)
    if isinstance(increment, bool) or not isinstance(increment, int) or increment < 0:
        raise ValidationError("追加数は0以上の整数で指定してください", increment=increment)

    current = _current_count(usage, dimension, scope_id)
    limit = getattr(plan, DIMENSIONS[dimension])

    if limit < 0:
        return LimitDecision(allowed=True, dimension=dimension, limit=None, current=current, requested=increment)

    if current + increment <= limit:
        return LimitDecision(allowed=True, dimension=dimension, limit=limit, current=current, requested=increment)

    return LimitDecision(
        allowed=False,
        dimension=dimension,
        limit=limit,
        current=current,
        requested=increment,
        reason=f"ご利用のプランの{_DIMENSION_LABELS[dimension]}の上限 ({limit}) に達しています",
    )


def get_user_limits(db: Session, user_id: int) -> PlanLimits:
    """現在の購読プランの上限。購読がなければ全て0"""
    sub = get_current_subscription(db, user_id)
    if not sub:
        return PlanLimits()
    plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.id == sub.plan_id).first()
    if not plan:
        logger.warning(f"購読のプランが見つかりません: subscription_id={sub.id}, plan_id={sub.plan_id}")
        return PlanLimits()
    return PlanLimits(
        plan_name=plan.name,
        max_houses=plan.max_houses,
        max_rooms_per_house=plan.max_rooms_per_house,
        max_items_per_room=plan.max_items_per_room,
    )


def check_user_limit(
    db: Session,
    user_id: int,
    dimension: str,
    increment: int = 1,
    scope_id: Optional[int] = None,
) -> LimitDecision:
    """ユーザーの家屋・部屋・品目追加の可否 (対象の所有者確認付き)"""
    if dimension == ROOMS_PER_HOUSE and scope_id is not None:
        owned = db.query(House.id).filter(House.id == scope_id, House.user_id == user_id).first()
        if not owned:
            raise NotFoundError("家屋が見つかりません", house_id=scope_id)
    elif dimension == ITEMS_PER_ROOM and scope_id is not None:
        owned = (
            db.query(Room.id)
            .join(House, Room.house_id == House.id)
            .filter(Room.id == scope_id, House.user_id == user_id)
            .first()
        )
        if not owned:
            raise NotFoundError("部屋が見つかりません", room_id=scope_id)

    usage = compute_usage(db, user_id)
    limits = get_user_limits(db, user_id)
    return check_limit(usage, limits, dimension, increment, scope_id)


def analyze_usage(db: Session, user_id: int) -> list[str]:
    """既存データがプラン上限を超えていないか確認し、超過していれば requires_upgrade を立てる"""
    usage = compute_usage(db, user_id)
    limits = get_user_limits(db, user_id)

    reasons = []
    if 0 <= limits.max_houses < usage.house_count:
        reasons.append(f"家屋が{usage.house_count}件あります (上限 {limits.max_houses})")
    if limits.max_rooms_per_house >= 0:
        for house_id, count in usage.rooms_per_house.items():
            if count > limits.max_rooms_per_house:
                reasons.append(f"家屋ID {house_id} の部屋が{count}件あります (上限 {limits.max_rooms_per_house})")
    if limits.max_items_per_room >= 0:
        for room_id, count in usage.items_per_room.items():
            if count > limits.max_items_per_room:
                reasons.append(f"部屋ID {room_id} の品目が{count}件あります (上限 {limits.max_items_per_room})")

    if reasons:
        with atomic(db):
            user = db.query(User).filter(User.id == user_id).first()
            user.requires_upgrade = True
            record_event(
                db, "WARNING", "upgrade_required", "; ".join(reasons),
                user_id=user_id, details={"plan": limits.plan_name},
            )
        logger.warning(f"プラン上限超過: {len(reasons)}件", extra={"user_id": user_id, "event_type": "upgrade_required"})

    return reasons

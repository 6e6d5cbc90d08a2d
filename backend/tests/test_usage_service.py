"""利用状況集計と上限判定のテスト"""
from datetime import datetime, timedelta

import pytest

from homelist.core.exceptions import NotFoundError, ValidationError
from homelist.models.system_log import SystemLog
from homelist.services import subscription_service, trial_service, usage_service
from homelist.services.usage_service import (
    HOUSES, ITEMS_PER_ROOM, ROOMS_PER_HOUSE, PlanLimits, UsageSnapshot,
)

NOW = datetime(2026, 3, 1, 12, 0, 0)


def test_compute_usage_empty(db, user):
    usage = usage_service.compute_usage(db, user.id)
    assert usage.house_count == 0
    assert usage.room_count == 0
    assert usage.item_count == 0
    assert usage.rooms_per_house == {}


def test_compute_usage_counts(db, user, make_user, add_contents):
    h1 = add_contents(user.id, [2, 0, 5])
    h2 = add_contents(user.id, [])
    add_contents(make_user().id, [9])

    usage = usage_service.compute_usage(db, user.id)
    assert usage.house_count == 2
    assert usage.room_count == 3
    assert usage.item_count == 7
    assert usage.rooms_per_house == {h1.id: 3, h2.id: 0}
    assert sorted(usage.items_per_room.values()) == [0, 2, 5]


def test_compute_usage_unknown_user(db):
    with pytest.raises(NotFoundError):
        usage_service.compute_usage(db, 999)


def test_check_limit_under_and_at_limit():
    usage = UsageSnapshot(house_count=1)
    limits = PlanLimits(max_houses=2)

    assert usage_service.check_limit(usage, limits, HOUSES).allowed is True

    decision = usage_service.check_limit(usage, limits, HOUSES, increment=2)
    assert decision.allowed is False
    assert decision.limit == 2
    assert decision.current == 1
    assert decision.requested == 2
    assert decision.reason


def test_check_limit_unlimited():
    usage = UsageSnapshot(house_count=10_000)
    decision = usage_service.check_limit(usage, PlanLimits(max_houses=-1), HOUSES, increment=500)
    assert decision.allowed is True
    assert decision.limit is None


def test_check_limit_zero_limit_blocks():
    decision = usage_service.check_limit(UsageSnapshot(), PlanLimits(), HOUSES)
    assert decision.allowed is False


def test_check_limit_zero_increment_at_limit():
    usage = UsageSnapshot(house_count=2)
    assert usage_service.check_limit(usage, PlanLimits(max_houses=2), HOUSES, increment=0).allowed is True


def test_check_limit_scoped():
    usage = UsageSnapshot(rooms_per_house={1: 3, 2: 1}, items_per_room={7: 10})
    limits = PlanLimits(max_rooms_per_house=3, max_items_per_room=10)

    assert usage_service.check_limit(usage, limits, ROOMS_PER_HOUSE, scope_id=1).allowed is False
    assert usage_service.check_limit(usage, limits, ROOMS_PER_HOUSE, scope_id=2).allowed is True
    assert usage_service.check_limit(usage, limits, ITEMS_PER_ROOM, scope_id=7).allowed is False
    # 未知の部屋は 0 件扱い
    assert usage_service.check_limit(usage, limits, ITEMS_PER_ROOM, scope_id=99).allowed is True


def test_check_limit_accepts_plan_row(plans):
    decision = usage_service.check_limit(UsageSnapshot(house_count=2), plans["basic"], HOUSES)
    assert decision.allowed is False


@pytest.mark.parametrize("kwargs", [
    {"dimension": "garages"},
    {"dimension": HOUSES, "increment": -1},
    {"dimension": HOUSES, "increment": True},
    {"dimension": ROOMS_PER_HOUSE},
    {"dimension": ITEMS_PER_ROOM},
])
def test_check_limit_invalid_input(kwargs):
    with pytest.raises(ValidationError):
        usage_service.check_limit(UsageSnapshot(), PlanLimits(max_houses=5), **kwargs)


def test_user_limits_without_subscription(db, user):
    limits = usage_service.get_user_limits(db, user.id)
    assert limits.plan_name is None
    assert limits.max_houses == 0


def test_user_limits_follow_current_plan(db, plans, user):
    trial_service.start_trial(db, user.id, now=NOW)
    assert usage_service.get_user_limits(db, user.id).plan_name == "trial"

    subscription_service.assign_plan(db, user.id, plans["unlimited"].id, now=NOW + timedelta(days=1))
    limits = usage_service.get_user_limits(db, user.id)
    assert limits.plan_name == "unlimited"
    assert limits.max_houses == -1


def test_check_user_limit(db, plans, user, add_contents):
    subscription_service.assign_plan(db, user.id, plans["basic"].id, now=NOW)
    house = add_contents(user.id, [1])

    assert usage_service.check_user_limit(db, user.id, HOUSES).allowed is True
    assert usage_service.check_user_limit(db, user.id, HOUSES, increment=2).allowed is False
    assert usage_service.check_user_limit(db, user.id, ROOMS_PER_HOUSE, scope_id=house.id, increment=4).allowed is True


def test_check_user_limit_other_users_house(db, plans, user, make_user, add_contents):
    subscription_service.assign_plan(db, user.id, plans["basic"].id, now=NOW)
    foreign = add_contents(make_user().id, [1])

    with pytest.raises(NotFoundError):
        usage_service.check_user_limit(db, user.id, ROOMS_PER_HOUSE, scope_id=foreign.id)


def test_analyze_usage_within_limits(db, plans, user, add_contents):
    subscription_service.assign_plan(db, user.id, plans["basic"].id, now=NOW)
    add_contents(user.id, [3])

    assert usage_service.analyze_usage(db, user.id) == []
    db.refresh(user)
    assert user.requires_upgrade is False


def test_analyze_usage_over_limits_sets_flag(db, plans, user, add_contents):
    trial_service.start_trial(db, user.id, now=NOW)
    add_contents(user.id, [11, 1, 1, 1])
    add_contents(user.id, [])

    reasons = usage_service.analyze_usage(db, user.id)

    # 家屋数・部屋数・品目数の3件
    assert len(reasons) == 3
    db.refresh(user)
    assert user.requires_upgrade is True
    assert db.query(SystemLog).filter(SystemLog.event_type == "upgrade_required").count() == 1


def test_analyze_usage_does_not_clear_flag(db, plans, user, add_contents):
    trial_service.start_trial(db, user.id, now=NOW)
    add_contents(user.id, [])
    add_contents(user.id, [])
    usage_service.analyze_usage(db, user.id)

    subscription_service.assign_plan(db, user.id, plans["unlimited"].id, now=NOW + timedelta(days=1))
    assert usage_service.analyze_usage(db, user.id) == []
    db.refresh(user)
    assert user.requires_upgrade is True

"""購読ライフサイクルのテスト"""
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError

from homelist.core.exceptions import InvalidPlanError, NotFoundError, StorageError, ValidationError
from homelist.models.subscription import Subscription, ACTIVE_STATUSES
from homelist.models.system_log import SystemLog
from homelist.services import subscription_service, trial_service

NOW = datetime(2026, 3, 1, 12, 0, 0)


def _active_count(db, user_id):
    return db.query(Subscription).filter(
        Subscription.user_id == user_id,
        Subscription.status.in_(ACTIVE_STATUSES),
    ).count()


def test_assign_plan(db, plans, user):
    sub = subscription_service.assign_plan(db, user.id, plans["basic"].id, now=NOW)

    assert sub.status == "ACTIVE"
    assert sub.current_period_start == NOW
    assert sub.current_period_end == datetime(2027, 3, 1, 12, 0, 0)
    assert sub.cancel_at_period_end is False
    assert db.query(SystemLog).filter(SystemLog.event_type == "plan_assigned").count() == 1


def test_assign_plan_leap_day(db, plans, user):
    sub = subscription_service.assign_plan(db, user.id, plans["basic"].id, now=datetime(2028, 2, 29, 9, 0))
    assert sub.current_period_end == datetime(2029, 2, 28, 9, 0)


def test_assign_plan_supersedes_previous(db, plans, user):
    first = subscription_service.assign_plan(db, user.id, plans["basic"].id, now=NOW)
    second = subscription_service.assign_plan(db, user.id, plans["unlimited"].id, now=NOW + timedelta(days=1))

    db.refresh(first)
    assert first.status == "CANCELED"
    assert first.cancel_at_period_end is True
    assert first.updated_at == NOW + timedelta(days=1)
    assert second.status == "ACTIVE"
    assert _active_count(db, user.id) == 1


def test_assign_plan_replaces_trial(db, plans, user):
    trial = trial_service.start_trial(db, user.id, now=NOW)
    subscription_service.assign_plan(db, user.id, plans["basic"].id, now=NOW + timedelta(days=2))

    db.refresh(trial)
    assert trial.status == "CANCELED"
    assert _active_count(db, user.id) == 1


def test_assign_inactive_plan_rejected(db, plans, user):
    with pytest.raises(InvalidPlanError):
        subscription_service.assign_plan(db, user.id, plans["legacy"].id, now=NOW)
    assert _active_count(db, user.id) == 0


def test_assign_inactive_plan_keeps_current(db, plans, user):
    current = subscription_service.assign_plan(db, user.id, plans["basic"].id, now=NOW)
    with pytest.raises(InvalidPlanError):
        subscription_service.assign_plan(db, user.id, plans["legacy"].id, now=NOW + timedelta(days=1))

    db.refresh(current)
    assert current.status == "ACTIVE"


def test_assign_unknown_plan_or_user(db, plans, user):
    with pytest.raises(NotFoundError):
        subscription_service.assign_plan(db, user.id, 999, now=NOW)
    with pytest.raises(NotFoundError):
        subscription_service.assign_plan(db, 999, plans["basic"].id, now=NOW)


def test_current_subscription_none(db, user):
    assert subscription_service.get_current_subscription(db, user.id) is None


def test_list_subscriptions_newest_first(db, plans, user):
    a = subscription_service.assign_plan(db, user.id, plans["basic"].id, now=NOW)
    b = subscription_service.assign_plan(db, user.id, plans["unlimited"].id, now=NOW + timedelta(days=1))
    ids = [s.id for s in subscription_service.list_subscriptions(db, user.id)]
    assert ids == [b.id, a.id]


def test_subscription_info_active(db, plans, user):
    subscription_service.assign_plan(db, user.id, plans["basic"].id, now=NOW)
    info = subscription_service.get_subscription_info(db, user.id, now=NOW)

    assert info["has_active_subscription"] is True
    assert info["current_plan"].name == "basic"
    assert info["is_on_trial"] is False
    assert info["requires_upgrade"] is False


def test_subscription_info_trial_is_not_active(db, plans, user):
    trial_service.start_trial(db, user.id, now=NOW)
    info = subscription_service.get_subscription_info(db, user.id, now=NOW + timedelta(days=1))

    assert info["has_active_subscription"] is False
    assert info["is_on_trial"] is True
    assert info["days_left_in_trial"] == 9
    assert info["current_plan"].name == "trial"


def test_subscription_info_unknown_user(db):
    with pytest.raises(NotFoundError):
        subscription_service.get_subscription_info(db, 999)


def test_cancel_subscription(db, plans, user):
    sub = subscription_service.assign_plan(db, user.id, plans["basic"].id, now=NOW)
    canceled = subscription_service.cancel_subscription(db, user.id, sub.id, now=NOW + timedelta(days=3))

    assert canceled.status == "CANCELED"
    assert canceled.cancel_at_period_end is True
    assert canceled.updated_at == NOW + timedelta(days=3)
    assert subscription_service.get_current_subscription(db, user.id) is None


def test_cancel_already_canceled_is_noop(db, plans, user):
    sub = subscription_service.assign_plan(db, user.id, plans["basic"].id, now=NOW)
    subscription_service.cancel_subscription(db, user.id, sub.id, now=NOW + timedelta(days=1))
    again = subscription_service.cancel_subscription(db, user.id, sub.id, now=NOW + timedelta(days=5))

    assert again.status == "CANCELED"
    assert again.updated_at == NOW + timedelta(days=1)
    assert db.query(SystemLog).filter(SystemLog.event_type == "subscription_canceled").count() == 1


def test_cancel_other_users_subscription(db, plans, user, make_user):
    other = make_user()
    sub = subscription_service.assign_plan(db, other.id, plans["basic"].id, now=NOW)
    with pytest.raises(NotFoundError):
        subscription_service.cancel_subscription(db, user.id, sub.id, now=NOW)


def test_purge_old_canceled(db, plans, user):
    old_id = subscription_service.assign_plan(db, user.id, plans["basic"].id, now=NOW).id
    recent = subscription_service.assign_plan(db, user.id, plans["unlimited"].id, now=NOW + timedelta(days=40))
    current = subscription_service.assign_plan(db, user.id, plans["basic"].id, now=NOW + timedelta(days=65))

    # old は day40 に、recent は day65 に CANCELED
    count = subscription_service.purge_old_canceled(db, 30, now=NOW + timedelta(days=80))

    assert count == 1
    remaining = {s.id for s in subscription_service.list_subscriptions(db, user.id)}
    assert remaining == {recent.id, current.id}
    assert old_id not in remaining


def test_purge_never_touches_active(db, plans, user):
    subscription_service.assign_plan(db, user.id, plans["basic"].id, now=NOW)
    assert subscription_service.purge_old_canceled(db, 0, now=NOW + timedelta(days=999)) == 0
    assert _active_count(db, user.id) == 1


def test_purge_uses_default_retention(db, plans, user):
    subscription_service.assign_plan(db, user.id, plans["basic"].id, now=NOW)
    subscription_service.assign_plan(db, user.id, plans["unlimited"].id, now=NOW + timedelta(days=1))

    assert subscription_service.purge_old_canceled(db, now=NOW + timedelta(days=30)) == 0
    assert subscription_service.purge_old_canceled(db, now=NOW + timedelta(days=32)) == 1


@pytest.mark.parametrize("days", [-1, True, 1.5])
def test_purge_invalid_retention(db, days):
    with pytest.raises(ValidationError):
        subscription_service.purge_old_canceled(db, days, now=NOW)


def _fail_record_event(*args, **kwargs):
    raise OperationalError("INSERT INTO system_logs", {}, Exception("disk I/O error"))


def test_assign_plan_rolls_back_on_storage_failure(db, plans, user, monkeypatch):
    first = subscription_service.assign_plan(db, user.id, plans["basic"].id, now=NOW)
    first_id = first.id
    monkeypatch.setattr(subscription_service, "record_event", _fail_record_event)

    with pytest.raises(StorageError):
        subscription_service.assign_plan(db, user.id, plans["unlimited"].id, now=NOW + timedelta(days=1))

    rows = db.query(Subscription).filter(Subscription.user_id == user.id).all()
    assert [(s.id, s.status, s.cancel_at_period_end) for s in rows] == [(first_id, "ACTIVE", False)]
    assert rows[0].updated_at == NOW


def test_cancel_refresh_failure_raises_storage_error(db, plans, user, monkeypatch):
    sub = subscription_service.assign_plan(db, user.id, plans["basic"].id, now=NOW)
    sub_id = sub.id

    def _fail_refresh(instance):
        raise OperationalError("SELECT subscriptions", {}, Exception("connection lost"))

    monkeypatch.setattr(db, "refresh", _fail_refresh)
    with pytest.raises(StorageError):
        subscription_service.cancel_subscription(db, user.id, sub_id, now=NOW + timedelta(days=1))
    monkeypatch.undo()

    # commit 済みの変更は残る
    assert db.query(Subscription).filter(Subscription.id == sub_id).one().status == "CANCELED"

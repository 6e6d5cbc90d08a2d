from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from homelist.schemas.plan import PlanInfo
from homelist.services.usage_service import UsageSnapshot, PlanLimits


class AssignPlanRequest(BaseModel):
    plan_id: int


class GrantTrialRequest(BaseModel):
    days: int


class PurgeRequest(BaseModel):
    retention_days: Optional[int] = Field(default=None, ge=0)


class SubscriptionInfo(BaseModel):
    id: int
    user_id: int
    plan_id: int
    status: str
    cancel_at_period_end: bool
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SubscriptionStatus(BaseModel):
    """ユーザーの購読状況 (has_active_subscription は ACTIVE のみ)"""

    has_active_subscription: bool
    is_on_trial: bool
    trial_expired: bool
    days_left_in_trial: Optional[int] = None
    trial_started_at: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None
    has_used_trial: bool
    requires_upgrade: bool
    current_plan: Optional[PlanInfo] = None
    subscription: Optional[SubscriptionInfo] = None
    usage: Optional[UsageSnapshot] = None
    limits: Optional[PlanLimits] = None

    model_config = {"from_attributes": True}

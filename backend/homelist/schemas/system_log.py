from datetime import datetime
from pydantic import BaseModel
from typing import Any, Optional


class SystemLogInfo(BaseModel):
    id: int
    level: str
    event_type: str
    user_id: Optional[int] = None
    plan_id: Optional[int] = None
    subscription_id: Optional[int] = None
    message: str
    details: Optional[dict[str, Any]] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SystemLogPage(BaseModel):
    total: int
    page: int
    per_page: int
    logs: list[SystemLogInfo]

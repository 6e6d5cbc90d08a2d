from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class PlanCreate(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    display_name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    price: int = 0
    max_houses: int = -1
    max_rooms_per_house: int = -1
    max_items_per_room: int = -1
    is_active: bool = True
    allow_trial: bool = False
    sort_order: int = 0


class PlanUpdate(BaseModel):
    name: Optional[str] = None  # 変更不可 (同名のみ許容)
    display_name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[int] = None
    max_houses: Optional[int] = None
    max_rooms_per_house: Optional[int] = None
    max_items_per_room: Optional[int] = None
    is_active: Optional[bool] = None
    allow_trial: Optional[bool] = None
    sort_order: Optional[int] = None


class PlanInfo(BaseModel):
    id: int
    name: str
    display_name: str
    description: Optional[str] = None
    price: int
    max_houses: int
    max_rooms_per_house: int
    max_items_per_room: int
    is_active: bool
    allow_trial: bool
    sort_order: int
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

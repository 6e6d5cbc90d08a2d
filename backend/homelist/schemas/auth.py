import re
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional

# 英大文字・英小文字・数字・記号のうち3種類以上
_PASSWORD_CLASSES = (r"[A-Z]", r"[a-z]", r"[0-9]", r"[^A-Za-z0-9]")
_PASSWORD_MIN_CLASSES = 3


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: Optional[str] = Field(default=None, max_length=255)

    @field_validator("password")
    @classmethod
    def check_password_strength(cls, v: str) -> str:
        matched = sum(1 for pattern in _PASSWORD_CLASSES if re.search(pattern, v))
        if matched < _PASSWORD_MIN_CLASSES:
            raise ValueError("パスワードは英大文字・英小文字・数字・記号のうち3種類以上を含めてください")
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AuthResponse(BaseModel):
    message: str
    user_id: Optional[int] = None
    trial_started: bool = False


class UserInfo(BaseModel):
    """ログイン中ユーザー (トライアル状態を含む)"""

    id: int
    email: str
    name: Optional[str] = None
    role: str
    has_used_trial: bool
    trial_ends_at: Optional[datetime] = None
    requires_upgrade: bool

    model_config = {"from_attributes": True}

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum as SAEnum, func
from homelist.core.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)
    role = Column(SAEnum("USER", "ADMIN", name="user_role"), nullable=False, default="USER")
    is_active = Column(Boolean, nullable=False, default=True)

    # トライアル (has_used_trial は一度Trueになったら戻さない)
    trial_started_at = Column(DateTime, nullable=True)
    trial_ends_at = Column(DateTime, nullable=True)
    has_used_trial = Column(Boolean, nullable=False, default=False, comment="トライアル使用済み")
    requires_upgrade = Column(Boolean, nullable=False, default=False, comment="プラン上限超過")

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

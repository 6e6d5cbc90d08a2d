from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, func
from homelist.core.database import Base


class House(Base):
    __tablename__ = "houses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    address1 = Column(String(255), nullable=False, default="")
    address2 = Column(String(255), nullable=True)
    city = Column(String(100), nullable=False, default="")
    state = Column(String(100), nullable=False, default="")
    zip_code = Column(String(20), nullable=False, default="")
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

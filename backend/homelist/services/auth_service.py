"""認証ビジネスロジック (パスワード照合・ユーザー作成)"""
import bcrypt
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Optional

from homelist.models.user import User
from homelist.core.database import atomic, refresh
from homelist.core.exceptions import ConflictError, StorageError
from homelist.core.logging import get_logger

logger = get_logger(__name__)


def hash_password(password: str) -> str:
    """パスワードをbcryptでハッシュ化"""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """パスワードを検証"""
    return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))


def create_user(
    db: Session,
    email: str,
    password: str,
    name: Optional[str] = None,
    role: str = "USER",
) -> User:
    """新規ユーザー作成。メールアドレス重複は ConflictError"""
    user = User(
        email=email,
        password_hash=hash_password(password),
        name=name,
        role=role,
        is_active=True,
        has_used_trial=False,
        requires_upgrade=False,
    )
    try:
        with atomic(db):
            db.add(user)
    except StorageError as e:
        if isinstance(e.__cause__, IntegrityError):
            raise ConflictError("このメールアドレスは既に登録されています", email=email) from e
        raise
    refresh(db, user)
    logger.info(f"ユーザー作成: user_id={user.id}, email={email}")
    return user


def authenticate(db: Session, email: str, password: str) -> Optional[User]:
    """メール・パスワードで認証。失敗時None"""
    user = get_user_by_email(db, email)
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email).first()


def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()

"""共通依存関数: ログインユーザーと管理者判定"""
from typing import Optional
from fastapi import Request, HTTPException, Depends
from sqlalchemy.orm import Session

from homelist.core.database import get_db
from homelist.core.logging import get_logger
from homelist.core.redis import get_redis
from homelist.core.session import get_session, destroy_session
from homelist.models.user import User

logger = get_logger(__name__)


async def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    r=Depends(get_redis),
) -> Optional[User]:
    """Cookie → Redis → DB でユーザー取得。未ログインならNone

    セッションのロールがDBと食い違う場合はセッションを破棄して未ログイン扱いにする。
    """
    session_id = request.cookies.get("session_id")
    session_data = await get_session(r, session_id)
    if not session_data:
        return None

    user = db.query(User).filter(
        User.id == int(session_data["user_id"]),
        User.is_active == True,
    ).first()
    if user is None or user.role != session_data.get("role"):
        logger.info("無効なセッションを破棄", extra={"user_id": session_data.get("user_id")})
        await destroy_session(r, session_id)
        return None
    return user


async def require_login(user: Optional[User] = Depends(get_current_user)) -> User:
    if user is None:
        raise HTTPException(status_code=401, detail="ログインが必要です")
    return user


async def require_admin(user: User = Depends(require_login)) -> User:
    if user.role != "ADMIN":
        raise HTTPException(status_code=403, detail="管理者権限が必要です")
    return user


async def admin_flag(user: User = Depends(require_admin)) -> bool:
    """管理者操作サービスに渡す acting_as_admin"""
    return user.role == "ADMIN"

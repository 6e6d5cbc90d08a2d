"""認証ルーター: 登録、ログイン、ログアウト"""
from fastapi import APIRouter, Depends, HTTPException, Response, Request
from sqlalchemy.orm import Session

from homelist.core.database import get_db
from homelist.core.redis import get_redis
from homelist.core.session import create_session, destroy_session
from homelist.core.config import settings
from homelist.core.exceptions import ConfigurationError
from homelist.core.logging import get_logger
from homelist.core.rate_limit import limiter, LOGIN_RATE_LIMIT, REGISTER_RATE_LIMIT
from homelist.schemas.auth import RegisterRequest, LoginRequest, AuthResponse, UserInfo
from homelist.services import auth_service, trial_service
from homelist.routers.deps import require_login

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=AuthResponse, status_code=201)
@limiter.limit(REGISTER_RATE_LIMIT)
async def register(request: Request, req: RegisterRequest, db: Session = Depends(get_db)):
    """会員登録 (AUTO_START_TRIAL=True ならトライアルも開始)"""
    existing = auth_service.get_user_by_email(db, req.email)
    if existing:
        raise HTTPException(status_code=409, detail="このメールアドレスは既に登録されています")

    user = auth_service.create_user(db=db, email=req.email, password=req.password, name=req.name)

    trial_started = False
    if settings.AUTO_START_TRIAL and trial_service.should_start_trial(db, user.id):
        try:
            trial_service.start_trial(db, user.id)
            trial_started = True
        except ConfigurationError as e:
            # 登録自体は成功扱い。トライアルは後から本人または管理者が開始できる
            logger.warning(f"登録時のトライアル開始をスキップ: user_id={user.id}, {e.message}")

    return AuthResponse(message="登録が完了しました", user_id=user.id, trial_started=trial_started)


@router.post("/login", response_model=AuthResponse)
@limiter.limit(LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    req: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
    r=Depends(get_redis),
):
    """ログイン (セッションCookie発行)"""
    user = auth_service.authenticate(db, req.email, req.password)
    if not user:
        raise HTTPException(status_code=401, detail="メールアドレスまたはパスワードが正しくありません")

    session_id = await create_session(r, user.id, user.role)
    response.set_cookie(
        key="session_id",
        value=session_id,
        httponly=True,
        secure=not settings.DEBUG,  # 本番(DEBUG=False)ではTrue
        samesite="lax",
        max_age=settings.SESSION_TIMEOUT_MINUTES * 60,
    )
    logger.info(f"ログイン: user_id={user.id}")
    return AuthResponse(message="ログインしました", user_id=user.id)


@router.post("/logout", response_model=AuthResponse)
async def logout(request: Request, response: Response, r=Depends(get_redis)):
    """ログアウト"""
    await destroy_session(r, request.cookies.get("session_id"))
    response.delete_cookie("session_id")
    return AuthResponse(message="ログアウトしました")


@router.get("/me", response_model=UserInfo)
async def me(user=Depends(require_login)):
    """ログイン中のユーザー情報"""
    return user

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from homelist.core.config import settings
from homelist.core.database import init_db
from homelist.core.exceptions import EntitlementError
from homelist.core.logging import setup_logging, get_logger
from homelist.core.rate_limit import limiter, rate_limit_exceeded_handler
from homelist.core.redis import close_redis
from homelist.routers import health, auth, plans, subscriptions
from homelist.routers import admin_plans, admin_users, admin_logs, admin_maintenance

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """アプリケーションライフサイクル管理"""
    setup_logging(debug=settings.DEBUG)
    if settings.AUTO_CREATE_TABLES:
        init_db()
        logger.info("テーブル作成完了")
    logger.info("アプリケーション起動")
    yield
    await close_redis()
    logger.info("アプリケーション終了")


app = FastAPI(
    title=settings.SITE_NAME,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
)

# レート制限設定
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# --- バリデーションエラー日本語化 ---
_FIELD_JA = {
    "email": "メールアドレス",
    "password": "パスワード",
    "name": "名前",
    "display_name": "表示名",
    "description": "説明",
    "price": "価格",
    "max_houses": "家屋数上限",
    "max_rooms_per_house": "部屋数上限",
    "max_items_per_room": "品目数上限",
    "sort_order": "表示順",
    "plan_id": "プランID",
    "user_id": "ユーザーID",
    "subscription_id": "購読ID",
    "days": "日数",
    "retention_days": "保持日数",
    "dimension": "判定対象",
    "scope_id": "対象ID",
    "increment": "追加数",
    "role": "ロール",
    "before_date": "日付",
}


def _translate_error(err: dict) -> str:
    t = err.get("type", "")
    ctx = err.get("ctx", {})
    loc = err.get("loc", [])
    field = str(loc[-1]) if loc else ""
    fj = _FIELD_JA.get(field, field)

    if "email" in t or ("value" in t and "email" in err.get("msg", "").lower()):
        return f"{fj}は有効なメールアドレス形式で入力してください"
    if t == "string_too_short":
        return f"{fj}は{ctx.get('min_length', '')}文字以上で入力してください"
    if t == "string_too_long":
        return f"{fj}は{ctx.get('max_length', '')}文字以下で入力してください"
    if t == "missing":
        return f"{fj}は必須です"
    if t in ("int_parsing", "int_type", "int_from_float"):
        return f"{fj}は整数で入力してください"
    if t == "greater_than_equal":
        return f"{fj}は{ctx.get('ge', '')}以上の値を入力してください"
    if t == "less_than_equal":
        return f"{fj}は{ctx.get('le', '')}以下の値を入力してください"
    if t == "string_type":
        return f"{fj}は文字列で入力してください"
    if t == "bool_parsing":
        return f"{fj}は真偽値で入力してください"
    if t in ("date_parsing", "date_from_datetime_parsing"):
        return f"{fj}は日付形式で入力してください"
    return f"{fj}: 入力値が不正です"


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = [_translate_error(e) for e in exc.errors()]
    return JSONResponse(status_code=422, content={"detail": "、".join(messages)})


@app.exception_handler(EntitlementError)
async def entitlement_error_handler(request: Request, exc: EntitlementError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message} {exc.details}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ルーター登録
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(plans.router)
app.include_router(subscriptions.router)
app.include_router(admin_plans.router)
app.include_router(admin_users.router)
app.include_router(admin_logs.router)
app.include_router(admin_maintenance.router)

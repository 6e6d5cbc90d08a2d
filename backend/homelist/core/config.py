from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """アプリケーション設定"""

    # データベース
    DATABASE_URL: str = "mysql+pymysql://homelist:homelist@db:3306/homelist?charset=utf8mb4"
    AUTO_CREATE_TABLES: bool = False

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # サービス設定
    SITE_NAME: str = "Home Contents List"
    ALLOWED_ORIGINS: str = "http://localhost:8000,http://localhost:3000"

    # セッション
    SESSION_TIMEOUT_MINUTES: int = 60

    # レート制限
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_STORAGE_URI: str = "memory://"  # 複数プロセス構成では REDIS_URL を指定

    # トライアル・購読
    TRIAL_PLAN_NAME: str = "trial"
    TRIAL_PERIOD_DAYS: int = 10
    AUTO_START_TRIAL: bool = True
    ASSIGNED_PLAN_PERIOD_YEARS: int = 1
    CANCELED_RETENTION_DAYS: int = 30

    # スケジューラ
    SCHEDULER_TIMEZONE: str = "UTC"

    # 環境
    ENV: str = "development"
    DEBUG: bool = True

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()

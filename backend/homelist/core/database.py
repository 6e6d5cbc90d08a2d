from contextlib import contextmanager

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session

from homelist.core.config import settings
from homelist.core.exceptions import StorageError
from homelist.core.logging import get_logger

logger = get_logger(__name__)

if settings.DATABASE_URL.startswith("sqlite"):
    _engine_options = {"connect_args": {"check_same_thread": False}}
else:
    _engine_options = {"pool_size": 10, "max_overflow": 20, "pool_recycle": 3600}

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    echo=settings.DEBUG,
    **_engine_options,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class Base(DeclarativeBase):
    pass


def get_db():
    """FastAPI依存関数: DBセッション取得"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session):
    """1トランザクションで実行。例外時は全体をロールバック

    SQLAlchemyError は StorageError に変換する (呼び出し側は操作ごと再実行可能)。
    業務エラーはロールバック後そのまま再送出する。
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"トランザクション失敗のためロールバック: {e}")
        raise StorageError("データの保存に失敗しました") from e
    except Exception:
        db.rollback()
        raise


def refresh(db: Session, instance) -> None:
    """commit後の再読込。SQLAlchemyError は StorageError に変換する"""
    try:
        db.refresh(instance)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"保存後の再読込に失敗: {e}")
        raise StorageError("保存後のデータ取得に失敗しました") from e


def init_db():
    """テーブル作成 (AUTO_CREATE_TABLES=True のとき起動時に実行)"""
    import homelist.models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def check_db_connection() -> bool:
    """DB接続チェック"""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.warning(f"DB接続チェック失敗: {e}")
        return False

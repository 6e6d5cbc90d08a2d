"""保持期間を過ぎたキャンセル済み購読のクリーンアップ"""
from homelist.core.database import SessionLocal
from homelist.core.exceptions import EntitlementError
from homelist.core.logging import get_logger
from homelist.services import subscription_service

logger = get_logger(__name__)


def purge_canceled_subscriptions():
    """CANCELED のまま CANCELED_RETENTION_DAYS を過ぎた購読を物理削除"""
    db = SessionLocal()
    try:
        count = subscription_service.purge_old_canceled(db)
        if count:
            logger.info(f"キャンセル済み購読クリーンアップ: {count}件削除")
        return count
    except EntitlementError as e:
        logger.error(f"キャンセル済み購読クリーンアップエラー: {e.message}")
        return 0
    finally:
        db.close()

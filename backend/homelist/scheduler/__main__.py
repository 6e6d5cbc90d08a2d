"""Scheduler エントリポイント: python -m homelist.scheduler で起動"""
import signal
import sys
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from homelist.core.config import settings
from homelist.core.logging import setup_logging, get_logger
from homelist.scheduler.subscription_cleaner import purge_canceled_subscriptions

logger = get_logger("scheduler")

scheduler = BlockingScheduler(timezone=settings.SCHEDULER_TIMEZONE)


def signal_handler(sig, frame):
    logger.info("Scheduler停止シグナル受信")
    scheduler.shutdown(wait=False)
    sys.exit(0)


def main():
    setup_logging(debug=settings.DEBUG)
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)
    logger.info("Scheduler起動")

    # 03:00: キャンセル済み購読の削除
    scheduler.add_job(
        purge_canceled_subscriptions,
        CronTrigger(hour=3, minute=0, timezone=settings.SCHEDULER_TIMEZONE),
        id="subscription_cleaner",
        max_instances=1,
    )

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler終了")


if __name__ == "__main__":
    main()

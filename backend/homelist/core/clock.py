from datetime import datetime, timezone


def utcnow() -> datetime:
    """現在時刻 (UTC, naive)。DBのDateTime列はnaive UTCで保存する"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def add_years(value: datetime, years: int) -> datetime:
    """暦年で加算 (2/29 は 2/28 に丸める)"""
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        return value.replace(year=value.year + years, day=28)

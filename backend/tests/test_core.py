"""共通基盤 (ログ整形・レート制限キー) のテスト"""
import json
import logging

from starlette.requests import Request

from homelist.core.logging import JSONFormatter
from homelist.core.rate_limit import rate_limit_key


def _request(headers: dict) -> Request:
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": ("10.0.0.9", 1234),
    })


def test_json_formatter_context_fields():
    record = logging.LogRecord("homelist.test", logging.INFO, __file__, 1, "購読キャンセル", None, None)
    record.user_id = 7
    record.subscription_id = 42

    entry = json.loads(JSONFormatter().format(record))
    assert entry["message"] == "購読キャンセル"
    assert entry["level"] == "INFO"
    assert entry["user_id"] == 7
    assert entry["subscription_id"] == 42
    assert "plan_id" not in entry


def test_rate_limit_key_prefers_session():
    assert rate_limit_key(_request({"Cookie": "session_id=abc"})) == "session:abc"


def test_rate_limit_key_forwarded_ip():
    assert rate_limit_key(_request({"X-Forwarded-For": "203.0.113.5, 10.0.0.1"})) == "ip:203.0.113.5"
    assert rate_limit_key(_request({})) == "ip:10.0.0.9"

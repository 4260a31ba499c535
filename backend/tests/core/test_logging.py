import logging

from app.core.logging import RedactBearerFilter


def _record(msg, *args):
    return logging.LogRecord("app.integrations.salla", logging.WARNING, __file__, 1, msg, args, None)


def test_bearer_token_is_masked():
    rec = _record("salla.http_error url=%s headers=%s", "/orders", {"Authorization": "Bearer abc.DEF-123_x"})
    assert RedactBearerFilter().filter(rec) is True
    assert rec.getMessage() == "salla.http_error url=/orders headers={'Authorization': 'Bearer ***'}"


def test_plain_messages_untouched():
    rec = _record("assign.done user_id=%s", 7)
    RedactBearerFilter().filter(rec)
    assert rec.getMessage() == "assign.done user_id=7"

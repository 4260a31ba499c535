from datetime import timedelta

from app.integrations.salla.token_provider import SallaTokenProvider
from app.repository import salla_auth_repo


MERCHANT = "1696031053"


class _Clock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now


def test_reads_token_from_db_and_caches_until_invalidated(db, session_factory, utc):
    clock = _Clock(utc(2026, 1, 1, 9, 0))
    salla_auth_repo.store_token(db, MERCHANT, "db-token-1", clock.now + timedelta(days=7))
    provider = SallaTokenProvider(merchant_id=MERCHANT, session_factory=session_factory,
                                  ttl_sec=300, fallback_token="static", clock=clock)

    assert provider.get_token() == "db-token-1"

    # 外部刷新任务写入新 token：缓存期内仍返回旧值，invalidate 后读到新值
    salla_auth_repo.store_token(db, MERCHANT, "db-token-2", clock.now + timedelta(days=7))
    assert provider.get_token() == "db-token-1"
    provider.invalidate()
    assert provider.get_token() == "db-token-2"


def test_cache_expires_after_ttl(db, session_factory, utc):
    clock = _Clock(utc(2026, 1, 1, 9, 0))
    salla_auth_repo.store_token(db, MERCHANT, "first", None)
    provider = SallaTokenProvider(merchant_id=MERCHANT, session_factory=session_factory, ttl_sec=300, clock=clock)
    assert provider.get_token() == "first"

    salla_auth_repo.store_token(db, MERCHANT, "second", None)
    clock.now += timedelta(seconds=301)
    assert provider.get_token() == "second"


def test_falls_back_to_static_token_without_db_row(session_factory):
    provider = SallaTokenProvider(merchant_id=MERCHANT, session_factory=session_factory, fallback_token="static")
    assert provider.get_token() == "static"


def test_returns_none_when_no_token_anywhere(session_factory):
    provider = SallaTokenProvider(merchant_id=MERCHANT, session_factory=session_factory, fallback_token="")
    assert provider.get_token() is None

"""SallaHttpClient：鉴权头、重试/退避、401 刷新、4xx 不重试。全部走假 Session，不发真实请求。"""

import pytest

from app.integrations.salla.errors import SallaAuthError, SallaFatalError, SallaRetryableError
from app.integrations.salla.http_client import SallaHttpClient


BASE = "https://salla.test/admin/v2"


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_client(sleeps, token_source):
    def _make(session, tokens=None, **overrides):
        kwargs = dict(
            base_url=BASE,
            max_attempts=3,
            backoff_ms=300,
            rate_limit_per_min=0,   # 关闭进程内节流
            session=session,
            sleep=sleeps.append,
        )
        kwargs.update(overrides)
        return SallaHttpClient(tokens or token_source(), **kwargs)
    return _make


def test_get_json_success_sends_bearer_and_returns_payload(make_client, fake_session, fake_response):
    session = fake_session(responses=[fake_response(200, {"data": [{"id": 1}]})])
    client = make_client(session)

    result = client.get_json("/orders", params={"status": "under_review"})

    assert result.ok and result.attempts == 1
    assert result.value == {"data": [{"id": 1}]}
    call = session.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == f"{BASE}/orders"
    assert call["params"] == {"status": "under_review"}
    assert call["headers"]["Authorization"] == "Bearer tok-1"


def test_retryable_status_backs_off_then_succeeds(make_client, fake_session, fake_response, sleeps):
    session = fake_session(responses=[
        fake_response(503, text="busy"),
        fake_response(502, text="bad gateway"),
        fake_response(200, {"data": []}),
    ])
    client = make_client(session)

    result = client.get_json("/orders")

    assert result.ok
    assert result.attempts == 3
    assert sleeps == [0.3, 0.6]   # 300ms * 2**attempt


def test_retries_exhausted_returns_retryable_failure(make_client, fake_session, fake_response, sleeps):
    session = fake_session(responses=[fake_response(500, text="boom")] * 3)
    client = make_client(session)

    result = client.get_json("/orders")

    assert not result.ok
    assert isinstance(result.error, SallaRetryableError)
    assert result.error.status_code == 500
    assert result.attempts == 3
    assert len(session.calls) == 3
    assert sleeps == [0.3, 0.6]


def test_network_error_is_retried(make_client, fake_session, fake_response, network_error):
    session = fake_session(responses=[network_error("reset"), fake_response(200, {"ok": True})])
    client = make_client(session)

    result = client.get_json("/orders/1")

    assert result.ok and result.value == {"ok": True}
    assert len(session.calls) == 2


def test_client_error_is_not_retried(make_client, fake_session, fake_response, sleeps):
    session = fake_session(responses=[fake_response(404, text="not found")])
    client = make_client(session)

    result = client.get_json("/orders/404")

    assert not result.ok
    assert isinstance(result.error, SallaFatalError)
    assert not isinstance(result.error, SallaRetryableError)
    assert result.error.status_code == 404
    assert len(session.calls) == 1
    assert sleeps == []


def test_401_invalidates_token_and_retries_once_with_fresh_token(
    make_client, fake_session, fake_response, token_source, sleeps,
):
    tokens = token_source(["stale", "fresh"])
    session = fake_session(responses=[fake_response(401, text="expired"), fake_response(200, {"data": {}})])
    client = make_client(session, tokens)

    result = client.get_json("/orders/statuses")

    assert result.ok
    assert result.attempts == 1          # 刷新不计入重试次数
    assert tokens.invalidations == 1
    assert [c["headers"]["Authorization"] for c in session.calls] == ["Bearer stale", "Bearer fresh"]
    assert sleeps == []


def test_401_after_refresh_is_auth_failure(make_client, fake_session, fake_response, token_source):
    tokens = token_source(["stale", "still-bad"])
    session = fake_session(responses=[fake_response(401, text="no"), fake_response(401, text="no")])
    client = make_client(session, tokens)

    result = client.get_json("/orders")

    assert isinstance(result.error, SallaAuthError)
    assert len(session.calls) == 2


def test_missing_token_fails_without_request(make_client, fake_session, token_source):
    session = fake_session(responses=[])
    client = make_client(session, token_source([None]))

    result = client.get_json("/orders")

    assert isinstance(result.error, SallaAuthError)
    assert session.calls == []


def test_post_without_retry_sends_once(make_client, fake_session, fake_response, sleeps):
    session = fake_session(responses=[fake_response(500, text="oops")])
    client = make_client(session)

    result = client.post_json("/orders/1/status", json_body={"status_id": 1939592358}, retry=False)

    assert not result.ok
    assert result.attempts == 1
    assert session.calls[0]["json"] == {"status_id": 1939592358}
    assert sleeps == []


def test_429_honours_retry_after(make_client, fake_session, fake_response, sleeps):
    session = fake_session(responses=[
        fake_response(429, text="slow down", headers={"Retry-After": "2"}),
        fake_response(200, {"data": []}),
    ])
    client = make_client(session)

    assert client.get_json("/orders").ok
    assert sleeps == [2.0]


def test_empty_2xx_body_is_ok_with_none(make_client, fake_session, fake_response):
    session = fake_session(responses=[fake_response(204, text="")])
    client = make_client(session)

    result = client.post_json("/orders/1/status", json_body={"status_id": 1}, retry=False)

    assert result.ok and result.value is None

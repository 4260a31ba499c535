"""
公共测试夹具：
  - 在 import app 之前把环境切到 SQLite / 关闭 Redis 限流，保证测试不碰真实 Postgres、Redis、Salla；
  - 每个测试一个全新的内存 SQLite（StaticPool 让同一连接跨线程复用，TestClient 也能看到同一份数据）；
  - 假的 HTTP Session / 订单 API / 状态字典，注入到客户端和分单引擎。
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SALLA_GLOBAL_RL_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import json
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

import pytest
import requests
from sqlalchemy.pool import StaticPool

from app.core.security import get_password_hash
from app.db.base import Base
from app.db.session import build_engine, build_session_factory
from app.integrations.salla.errors import RemoteResult, SallaFatalError, SallaRetryableError
from app.integrations.salla.normalizers import CandidateOrder, normalize_order
from app.integrations.salla.statuses import StatusPlan
from app.repository import user_repo


MERCHANT_ID = "1696031053"
PREPARING_ID = 1939592358


# ---------- DB ----------
@pytest.fixture
def engine():
    eng = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# bcrypt 很慢：整个测试进程只算一次
_PASSWORD_HASH: Dict[str, str] = {}


def _hash(password: str) -> str:
    if password not in _PASSWORD_HASH:
        _PASSWORD_HASH[password] = get_password_hash(password)
    return _PASSWORD_HASH[password]


@pytest.fixture
def make_user(db):
    def _make(username: str, *, is_active: bool = True, is_operator: bool = False, password: str = "secret"):
        return user_repo.create_user(
            db, username, _hash(password),
            full_name=username.title(), is_superuser=is_operator, is_active=is_active,
        )
    return _make


# ---------- 假 HTTP ----------
class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, *, text: Optional[str] = None,
                 headers: Optional[Dict[str, str]] = None) -> None:
        self.status_code = status_code
        if text is None:
            text = "" if payload is None else json.dumps(payload)
        self.text = text
        self.content = text.encode("utf-8")
        self.headers = headers or {}
        self._payload = payload

    def json(self) -> Any:
        if self._payload is None:
            return json.loads(self.text)
        return self._payload


class FakeSession:
    """
    requests.Session 的替身：
      - handler(method, url, kwargs) 返回 FakeResponse 或抛 requests 异常；
      - 或者给一个响应队列，按顺序吐出。
    """

    def __init__(self, handler: Optional[Callable[..., FakeResponse]] = None,
                 responses: Optional[Iterable[Any]] = None) -> None:
        self.handler = handler
        self.queue: List[Any] = list(responses or [])
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        if self.handler is not None:
            return self.handler(method, url, kwargs)
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self.closed = True


class CountingTokens:
    def __init__(self, tokens: Iterable[Optional[str]] = ("tok-1",)) -> None:
        self.tokens = list(tokens)
        self.invalidations = 0

    def get_token(self) -> Optional[str]:
        index = min(self.invalidations, len(self.tokens) - 1)
        return self.tokens[index]

    def invalidate(self) -> None:
        self.invalidations += 1


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def token_source():
    return CountingTokens


@pytest.fixture
def network_error():
    return requests.ConnectionError


# ---------- 假订单 API / 状态字典（注入引擎） ----------
def salla_order(order_id: int, *, created: str, reference: Optional[int] = None, slug: str = "under_review") -> Dict[str, Any]:
    return {
        "id": order_id,
        "reference_id": reference or order_id,
        "date": {"date": f"{created}.000000", "timezone": "Asia/Riyadh"},
        "status": {"id": 566146469, "name": "تحت المراجعة", "slug": slug},
    }


class FakeOrdersAPI:
    def __init__(self, orders: Iterable[Dict[str, Any]] = (), *, fail_fetch: bool = False,
                 failing_sync: Iterable[str] = (), before_claim: Optional[Callable[[], None]] = None) -> None:
        self.orders = list(orders)
        self.fail_fetch = fail_fetch
        self.failing_sync = {str(o) for o in failing_sync}
        self.before_claim = before_claim
        self.fetch_calls: List[Dict[str, Any]] = []
        self.detail_calls: List[str] = []
        self.sync_calls: List[tuple] = []
        self.lookup_calls: List[tuple] = []
        self.lookup_error = None

    def fetch_candidates(self, status_filters, limit) -> RemoteResult[List[CandidateOrder]]:
        self.fetch_calls.append({"filters": list(status_filters), "limit": limit})
        if self.fail_fetch:
            return RemoteResult.failure(SallaRetryableError("GET /orders: 503"), attempts=3)
        found = [normalize_order(o) for o in self.orders]
        ordered = sorted([c for c in found if c is not None], key=lambda c: c.sort_key)
        return RemoteResult.success([
            replace(c, fetch_position=i) for i, c in enumerate(ordered[:limit])
        ])

    def fetch_detail(self, candidate: CandidateOrder) -> CandidateOrder:
        self.detail_calls.append(candidate.order_id)
        if self.before_claim is not None:
            self.before_claim()
        return candidate

    def find_by_reference(self, reference: str) -> RemoteResult[Optional[CandidateOrder]]:
        self.lookup_calls.append(("reference", reference))
        return self._lookup("reference_id", reference)

    def find_by_id(self, order_id: str) -> RemoteResult[Optional[CandidateOrder]]:
        self.lookup_calls.append(("id", order_id))
        return self._lookup("id", order_id)

    def _lookup(self, key: str, value: str) -> RemoteResult[Optional[CandidateOrder]]:
        if self.lookup_error is not None:
            return RemoteResult.failure(self.lookup_error)
        for raw in self.orders:
            if str(raw.get(key)) == str(value):
                return RemoteResult.success(normalize_order(raw))
        return RemoteResult.success(None)

    def move_to_preparation(self, order_id: str, status_id: int) -> RemoteResult:
        self.sync_calls.append((str(order_id), status_id))
        if str(order_id) in self.failing_sync:
            return RemoteResult.failure(SallaFatalError(f"POST /orders/{order_id}/status: 422", status_code=422))
        return RemoteResult.success({"status": 200, "success": True})


class FakeStatuses:
    def __init__(self, plan: Optional[StatusPlan] = None) -> None:
        self.plan = plan or StatusPlan(
            new_order_filters=["under_review", "449146439"],
            preparing_status_id=PREPARING_ID,
            preparing_status_slug="in_progress",
            preparing_status_name="قيد التنفيذ",
        )

    def resolve_plan(self) -> StatusPlan:
        return self.plan


@pytest.fixture
def order_payload():
    return salla_order


@pytest.fixture
def fake_orders_api():
    return FakeOrdersAPI


@pytest.fixture
def fake_statuses():
    return FakeStatuses()


@pytest.fixture
def utc():
    def _utc(*args) -> datetime:
        return datetime(*args, tzinfo=timezone.utc)
    return _utc

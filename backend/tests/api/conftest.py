import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from app.api.v1.order_assignments import get_assignment_engine
from app.api.v1.priority_orders import get_order_lookup
from app.db.session import get_db
from app.main import app
from app.services.assignment.engine import AssignmentEngine
from app.services.auth_service import get_current_user


MERCHANT = "1696031053"


class ApiState:
    """测试里可随时切换“当前登录用户”和远端订单。"""

    def __init__(self, orders_api):
        self.user = None
        self.orders_api = orders_api


@pytest.fixture
def api_state(fake_orders_api):
    return ApiState(fake_orders_api([]))


@pytest.fixture
def client(session_factory, fake_statuses, api_state):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    def override_get_current_user():
        if api_state.user is None:
            raise HTTPException(status_code=401, detail="Not authenticated")
        return api_state.user

    def override_engine():
        return AssignmentEngine(api_state.orders_api, fake_statuses, merchant_id=MERCHANT)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_assignment_engine] = override_engine
    app.dependency_overrides[get_order_lookup] = lambda: api_state.orders_api
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()

import pytest

from app.repository import assignment_repo, priority_repo


MERCHANT = "1696031053"


@pytest.fixture
def worker(make_user, api_state):
    user = make_user("worker")
    api_state.user = user
    return user


def _claim(db, user, order_id):
    return assignment_repo.create_claim(
        db, merchant_id=MERCHANT, user_id=user.id, order_id=str(order_id),
        order_number=str(order_id), snapshot=None, remote_status="under_review",
    )


def test_assign_requires_login(client):
    assert client.post("/api/v1/assign", json={"userId": 1}).status_code == 401


def test_assign_missing_user_id_is_400(client, worker):
    resp = client.post("/api/v1/assign", json={})
    assert resp.status_code == 400


def test_assign_claims_priority_order(client, db, worker, api_state, fake_orders_api, order_payload):
    priority_repo.flag_order(db, merchant_id=MERCHANT, order_id="1002")
    api_state.orders_api = fake_orders_api([
        order_payload(1001, created="2024-05-01 09:00:00"),
        order_payload(1002, created="2024-05-01 08:00:00"),
    ])

    resp = client.post("/api/v1/assign", json={"userId": worker.id})

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["assigned"] == 1
    assert body["totalAssignments"] == 1
    assert body["assignments"][0]["orderId"] == "1002"
    assert body["assignments"][0]["orderNumber"] == "1002"
    assert body["assignments"][0]["status"] == "assigned"


def test_assign_for_busy_user_returns_zero(client, db, worker, api_state):
    _claim(db, worker, 2000)

    body = client.post("/api/v1/assign", json={"userId": worker.id}).json()

    assert body["success"] is True
    assert (body["assigned"], body["totalAssignments"], body["assignments"]) == (0, 1, [])
    assert body["message"]
    assert api_state.orders_api.fetch_calls == []


def test_worker_cannot_assign_for_someone_else(client, worker, make_user):
    other = make_user("other")
    assert client.post("/api/v1/assign", json={"userId": other.id}).status_code == 403


def test_unknown_and_inactive_users(client, make_user, api_state):
    api_state.user = make_user("op", is_operator=True)
    idle = make_user("idle", is_active=False)

    assert client.post("/api/v1/assign", json={"userId": 9999}).status_code == 404
    assert client.post("/api/v1/assign", json={"userId": idle.id}).status_code == 400


def test_total_fetch_failure_is_500(client, worker, api_state, fake_orders_api):
    api_state.orders_api = fake_orders_api(fail_fetch=True)
    assert client.post("/api/v1/assign", json={"userId": worker.id}).status_code == 500


def test_my_assignments_and_status_flow(client, db, worker):
    row = _claim(db, worker, 3000)

    mine = client.get("/api/v1/order-assignments/mine").json()
    assert [m["orderId"] for m in mine] == ["3000"]
    assert mine[0]["remoteSynced"] is False

    resp = client.post(f"/api/v1/order-assignments/{row.id}/status", json={"status": "preparing"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "preparing"
    assert resp.json()["startedAt"] is not None

    illegal = client.post(f"/api/v1/order-assignments/{row.id}/status", json={"status": "completed"})
    assert illegal.status_code == 409

    removed = client.post(f"/api/v1/order-assignments/{row.id}/status", json={"status": "removed"})
    assert removed.status_code == 403


def test_status_update_guards(client, db, worker, make_user, api_state):
    other = make_user("other")
    row = _claim(db, other, 4000)

    assert client.post(f"/api/v1/order-assignments/{row.id}/status", json={"status": "preparing"}).status_code == 403
    assert client.post("/api/v1/order-assignments/999/status", json={"status": "preparing"}).status_code == 404

    api_state.user = make_user("op", is_operator=True)
    resp = client.post(f"/api/v1/order-assignments/{row.id}/status", json={"status": "removed", "notes": "cancelled"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "removed"

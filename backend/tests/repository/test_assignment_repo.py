"""order_assignments 的唯一约束就是抢单互斥原语：这里直接在 SQLite 上验证三条约束及冲突分类。"""

import pytest

from app.db.model.assignment import AssignmentStatus, UQ_ACTIVE_ORDER, UQ_ACTIVE_USER, UQ_USER_ORDER
from app.repository import assignment_repo
from app.services.assignment.errors import ClaimRaceLost, SlotAlreadyFilled
from app.services.assignment.status_flow import advance_status


MERCHANT = "1696031053"


@pytest.fixture
def claim(db):
    def _claim(user, order_id, merchant_id=MERCHANT):
        return assignment_repo.create_claim(
            db,
            merchant_id=merchant_id,
            user_id=user.id,
            order_id=str(order_id),
            order_number=f"N{order_id}",
            snapshot={"id": order_id, "items": []},
            remote_status="under_review",
        )
    return _claim


def test_create_claim_persists_assigned_row(db, make_user, claim):
    u1 = make_user("u1")
    row = claim(u1, 1001)

    assert row.id is not None
    assert row.status == AssignmentStatus.ASSIGNED.value
    assert row.remote_synced is False
    assert row.order_snapshot == {"id": 1001, "items": []}
    assert assignment_repo.count_active_for_user(db, u1.id) == 1


def test_same_order_cannot_be_active_for_two_users(db, make_user, claim):
    u1, u2 = make_user("u1"), make_user("u2")
    claim(u1, 3000)

    with pytest.raises(ClaimRaceLost) as exc:
        claim(u2, 3000)
    assert exc.value.constraint == UQ_ACTIVE_ORDER
    assert assignment_repo.count_active_for_user(db, u2.id) == 0


def test_user_cannot_hold_two_active_orders(db, make_user, claim):
    u1 = make_user("u1")
    claim(u1, 1001)

    with pytest.raises(SlotAlreadyFilled) as exc:
        claim(u1, 1002)
    assert exc.value.constraint == UQ_ACTIVE_USER


def test_user_cannot_claim_same_order_twice_even_after_completion(db, make_user, claim):
    u1 = make_user("u1")
    row = claim(u1, 1001)
    for target in ("preparing", "shipped", "completed"):
        row = advance_status(db, row, target)

    with pytest.raises(ClaimRaceLost) as exc:
        claim(u1, 1001)
    assert exc.value.constraint == UQ_USER_ORDER


def test_terminal_rows_release_the_order_for_other_users(db, make_user, claim):
    u1, u2 = make_user("u1"), make_user("u2")
    row = claim(u1, 3000)
    advance_status(db, row, "removed", is_operator=True)

    other = claim(u2, 3000)
    assert other.user_id == u2.id
    assert assignment_repo.count_active_for_user(db, u1.id) == 0


def test_shipped_still_counts_as_active(db, make_user, claim):
    u1 = make_user("u1")
    row = claim(u1, 2000)
    row = advance_status(db, row, "preparing")
    advance_status(db, row, "shipped")

    assert assignment_repo.count_active_for_user(db, u1.id) == 1
    with pytest.raises(SlotAlreadyFilled):
        claim(u1, 2001)


def test_claimed_order_ids_covers_tenant_active_and_own_history(db, make_user, claim):
    u1, u2 = make_user("u1"), make_user("u2")
    own = claim(u1, 10)
    advance_status(db, own, "removed", is_operator=True)       # u1 的历史单
    claim(u2, 20)                                              # 别人的活动单
    other_done = claim(make_user("u3"), 30)
    advance_status(db, other_done, "removed", is_operator=True)  # 别人的终态单：可再认领
    claim(make_user("u4"), 40, merchant_id="other-store")      # 其它商户

    claimed = assignment_repo.claimed_order_ids(db, MERCHANT, u1.id, ["10", "20", "30", "40", "50"])
    assert claimed == {"10", "20"}


def test_delete_claim_removes_row(db, make_user, claim):
    u1 = make_user("u1")
    row = claim(u1, 1001)
    row_id = row.id

    assignment_repo.delete_claim(db, row)

    assert assignment_repo.get(db, row_id) is None
    assert assignment_repo.count_active_for_user(db, u1.id) == 0


def test_mark_synced_records_remote_status(db, make_user, claim):
    row = claim(make_user("u1"), 1001)
    row = assignment_repo.mark_synced(db, row, "in_progress")
    assert row.remote_synced is True
    assert row.remote_status == "in_progress"

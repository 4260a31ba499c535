"""在 SQLite 上跑真实的 alembic 迁移：默认值和部分唯一索引都要生效。"""
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import inspect, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

import app.db
from app.db.session import build_engine

MIGRATIONS_DIR = Path(app.db.__file__).resolve().parent / "migrations"


def _run(eng, fn, revision):
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    with eng.begin() as conn:
        cfg.attributes["connection"] = conn
        fn(cfg, revision)


@pytest.fixture
def migrated():
    eng = build_engine("sqlite://", poolclass=StaticPool)
    _run(eng, command.upgrade, "head")
    yield eng
    eng.dispose()


def _insert_claim(conn, user_id, order_id, status=None):
    if status is None:
        conn.execute(
            text("INSERT INTO order_assignments (merchant_id, order_id, user_id) VALUES ('m1', :o, :u)"),
            {"o": order_id, "u": user_id},
        )
    else:
        conn.execute(
            text("INSERT INTO order_assignments (merchant_id, order_id, user_id, status) VALUES ('m1', :o, :u, :s)"),
            {"o": order_id, "u": user_id, "s": status},
        )


def test_upgrade_creates_tables_with_working_defaults(migrated):
    tables = set(inspect(migrated).get_table_names())
    assert {"users", "salla_auth", "order_assignments", "high_priority_orders"} <= tables

    with migrated.begin() as conn:
        conn.execute(text("INSERT INTO users (username, hashed_password) VALUES ('u1', 'x')"))
        _insert_claim(conn, 1, "1001")
        row = conn.execute(text("SELECT status, remote_synced, assigned_at FROM order_assignments")).one()

    assert row.status == "assigned"
    assert not row.remote_synced
    assert row.assigned_at is not None


def test_partial_unique_indexes_only_cover_active_rows(migrated):
    with migrated.begin() as conn:
        conn.execute(text("INSERT INTO users (username, hashed_password) VALUES ('u1', 'x'), ('u2', 'x')"))
        _insert_claim(conn, 1, "1001", status="completed")
        _insert_claim(conn, 1, "1002")
        _insert_claim(conn, 2, "1001")

    # 同一个人第二单活动单
    with pytest.raises(IntegrityError, match="order_assignments.user_id"):
        with migrated.begin() as conn:
            _insert_claim(conn, 1, "1003")

    # 同一单被第二个人活动认领
    with pytest.raises(IntegrityError):
        with migrated.begin() as conn:
            conn.execute(text("INSERT INTO users (username, hashed_password) VALUES ('u3', 'x')"))
            _insert_claim(conn, 3, "1002")


def test_downgrade_drops_everything(migrated):
    _run(migrated, command.downgrade, "base")
    assert set(inspect(migrated).get_table_names()) <= {"alembic_version"}

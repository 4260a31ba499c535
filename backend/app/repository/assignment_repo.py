# 分单记录（order_assignments）相关的 DB 操作

from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.model.assignment import (
    ACTIVE_STATUSES, AssignmentStatus, OrderAssignment,
    UQ_ACTIVE_ORDER, UQ_ACTIVE_USER, UQ_USER_ORDER,
)
from app.services.assignment.errors import ClaimConflict, ClaimRaceLost, SlotAlreadyFilled


# SQLite 报错只给列名："UNIQUE constraint failed: order_assignments.user_id"
_SQLITE_COLUMNS_TO_INDEX = {
    ("user_id",): UQ_ACTIVE_USER,
    ("merchant_id", "order_id"): UQ_ACTIVE_ORDER,
    ("user_id", "order_id"): UQ_USER_ORDER,
}


# ---------- Query ----------
def get(db: Session, assignment_id: int) -> Optional[OrderAssignment]:
    return db.get(OrderAssignment, assignment_id)


def count_active_for_user(db: Session, user_id: int) -> int:
    stmt = (
        select(func.count())
        .select_from(OrderAssignment)
        .where(OrderAssignment.user_id == user_id, OrderAssignment.status.in_(ACTIVE_STATUSES))
    )
    return int(db.scalar(stmt) or 0)


def list_for_user(db: Session, user_id: int, *, active_only: bool = False) -> List[OrderAssignment]:
    stmt = select(OrderAssignment).where(OrderAssignment.user_id == user_id)
    if active_only:
        stmt = stmt.where(OrderAssignment.status.in_(ACTIVE_STATUSES))
    stmt = stmt.order_by(OrderAssignment.assigned_at.desc(), OrderAssignment.id.desc())
    return list(db.scalars(stmt))


def claimed_order_ids(db: Session, merchant_id: str, user_id: int, order_ids: Iterable[str]) -> Set[str]:
    """
    候选单里不能再认领的 id：
      - 本商户下处于活动状态的（谁认领的都算）；
      - 当前用户认领过的任何一单（包括已完成/已移除，避免撞 (user_id, order_id) 唯一约束）。
    """
    ids = [str(i) for i in order_ids]
    if not ids:
        return set()
    stmt = (
        select(OrderAssignment.order_id)
        .where(OrderAssignment.order_id.in_(ids))
        .where(
            or_(
                (OrderAssignment.merchant_id == str(merchant_id)) & OrderAssignment.status.in_(ACTIVE_STATUSES),
                OrderAssignment.user_id == user_id,
            )
        )
    )
    return set(db.scalars(stmt))


# ---------- Mutations ----------
def create_claim(
    db: Session,
    *,
    merchant_id: str,
    user_id: int,
    order_id: str,
    order_number: Optional[str],
    snapshot: Optional[Dict[str, Any]],
    remote_status: Optional[str],
    assigned_at: Optional[datetime] = None,
) -> OrderAssignment:
    """
    插入一行 assigned 并立即提交；唯一约束就是抢单的互斥原语。
    冲突时回滚并抛 ClaimRaceLost（单被占）或 SlotAlreadyFilled（人被占）；其它存储错误原样上抛。
    """
    row = OrderAssignment(
        merchant_id=str(merchant_id),
        order_id=str(order_id),
        order_number=order_number,
        user_id=user_id,
        status=AssignmentStatus.ASSIGNED.value,
        remote_status=remote_status,
        remote_synced=False,
        order_snapshot=snapshot,
    )
    if assigned_at is not None:
        row.assigned_at = assigned_at
    db.add(row)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        conflict = classify_conflict(e, order_id=str(order_id), user_id=user_id)
        if conflict is None:
            raise
        raise conflict from e
    db.refresh(row)
    return row


def mark_synced(db: Session, row: OrderAssignment, remote_status: Optional[str]) -> OrderAssignment:
    row.remote_status = remote_status
    row.remote_synced = True
    db.commit()
    db.refresh(row)
    return row


def delete_claim(db: Session, row: OrderAssignment) -> None:
    """补偿动作：远端同步失败后删掉刚插入的那一行（按主键，不碰别人的行）。"""
    db.delete(row)
    db.commit()


def save_status(
    db: Session,
    row: OrderAssignment,
    status: str,
    *,
    started_at: Optional[datetime] = None,
    completed_at: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> OrderAssignment:
    row.status = status
    if started_at is not None:
        row.started_at = started_at
    if completed_at is not None:
        row.completed_at = completed_at
    if notes is not None:
        row.notes = notes
    db.commit()
    db.refresh(row)
    return row


# ---------- Helpers ----------
def classify_conflict(exc: IntegrityError, *, order_id: str, user_id: int) -> Optional[ClaimConflict]:
    """把 IntegrityError 翻译成抢单冲突；不是我们的唯一索引（如外键/检查约束）返回 None。"""
    index = _violated_index(exc)
    if index == UQ_ACTIVE_USER:
        return SlotAlreadyFilled(order_id, user_id, index)
    if index in (UQ_ACTIVE_ORDER, UQ_USER_ORDER):
        return ClaimRaceLost(order_id, user_id, index)
    return None


def _violated_index(exc: IntegrityError) -> Optional[str]:
    orig = exc.orig

    # psycopg / psycopg2：sqlstate 23505 + diag.constraint_name
    diag = getattr(orig, "diag", None)
    name = getattr(diag, "constraint_name", None)
    if name:
        return name

    message = str(orig)
    for index in (UQ_ACTIVE_USER, UQ_ACTIVE_ORDER, UQ_USER_ORDER):
        if index in message:
            return index

    marker = "UNIQUE constraint failed:"
    if marker in message:
        cols = tuple(
            part.strip().split(".")[-1]
            for part in message.split(marker, 1)[1].split(",")
        )
        return _SQLITE_COLUMNS_TO_INDEX.get(cols)
    return None

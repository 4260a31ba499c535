# 加急订单名单（high_priority_orders）：只追加，排名 = 标记先后

from __future__ import annotations
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.db.model.priority import HighPriorityOrder


def list_entries(db: Session, merchant_id: str) -> List[HighPriorityOrder]:
    stmt = (
        select(HighPriorityOrder)
        .where(HighPriorityOrder.merchant_id == str(merchant_id))
        .order_by(HighPriorityOrder.created_at.asc(), HighPriorityOrder.id.asc())
    )
    return list(db.scalars(stmt))


def rank_map(db: Session, merchant_id: str) -> Dict[str, int]:
    """{order_id: rank}，rank 从 0 开始，越小越优先。每次分单都重新读，不缓存。"""
    stmt = (
        select(HighPriorityOrder.order_id)
        .where(HighPriorityOrder.merchant_id == str(merchant_id))
        .order_by(HighPriorityOrder.created_at.asc(), HighPriorityOrder.id.asc())
    )
    ranks: Dict[str, int] = {}
    for order_id in db.scalars(stmt):
        ranks.setdefault(str(order_id), len(ranks))
    return ranks


def get(db: Session, merchant_id: str, order_id: str) -> Optional[HighPriorityOrder]:
    stmt = select(HighPriorityOrder).where(
        HighPriorityOrder.merchant_id == str(merchant_id),
        HighPriorityOrder.order_id == str(order_id),
    )
    return db.scalars(stmt).first()


def flag_order(
    db: Session,
    *,
    merchant_id: str,
    order_id: str,
    order_number: Optional[str] = None,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    created_by: Optional[int] = None,
) -> tuple[HighPriorityOrder, bool]:
    """
    追加一条加急标记；已存在时原样返回（不改排名）。
    返回 (row, created)。
    """
    existing = get(db, merchant_id, order_id)
    if existing is not None:
        return existing, False

    row = HighPriorityOrder(
        merchant_id=str(merchant_id),
        order_id=str(order_id),
        order_number=order_number,
        reason=reason,
        notes=notes,
        created_by=created_by,
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        # 两个运营同时标记同一单：以先提交的为准
        db.rollback()
        existing = get(db, merchant_id, order_id)
        if existing is None:
            raise
        return existing, False
    db.refresh(row)
    return row, True

"""
分单状态机：
    assigned → preparing → shipped → completed      （正常路径，由备货流程推进）
    assigned | preparing → removed                   （运营取消）
completed / removed 为终态，不再占名额，也不参与去重。
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, FrozenSet, Optional

from sqlalchemy.orm import Session

from app.db.model.assignment import AssignmentStatus, OrderAssignment
from app.repository import assignment_repo
from app.services.assignment.errors import InvalidTransition, TransitionForbidden
from app.utils.clock import now_utc

logger = logging.getLogger(__name__)

S = AssignmentStatus

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    S.ASSIGNED.value:  frozenset({S.PREPARING.value, S.REMOVED.value}),
    S.PREPARING.value: frozenset({S.SHIPPED.value, S.REMOVED.value}),
    S.SHIPPED.value:   frozenset({S.COMPLETED.value}),
    S.COMPLETED.value: frozenset(),
    S.REMOVED.value:   frozenset(),
}

OPERATOR_ONLY = frozenset({S.REMOVED.value})


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def advance_status(
    db: Session,
    row: OrderAssignment,
    target: str,
    *,
    is_operator: bool = False,
    notes: Optional[str] = None,
    clock: Callable[[], datetime] = now_utc,
) -> OrderAssignment:
    """校验并落库一次状态流转；进入 preparing 记 started_at，进入终态记 completed_at。"""
    try:
        target = S(target).value
    except ValueError:
        raise InvalidTransition(row.status, str(target)) from None

    if target in OPERATOR_ONLY and not is_operator:
        raise TransitionForbidden(f"only operators may move an assignment to {target!r}")
    if not can_transition(row.status, target):
        raise InvalidTransition(row.status, target)

    now = clock()
    started_at = now if target == S.PREPARING.value and row.started_at is None else None
    completed_at = now if target in (S.COMPLETED.value, S.REMOVED.value) else None

    previous = row.status
    row = assignment_repo.save_status(
        db, row, target, started_at=started_at, completed_at=completed_at, notes=notes,
    )
    logger.info("assign.status_changed assignment_id=%s order_id=%s user_id=%s from=%s to=%s",
        row.id, row.order_id, row.user_id, previous, target)
    return row

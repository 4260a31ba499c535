# 自动分单 + 备货员自己的分单列表 / 状态流转
from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path
from pydantic import Field
from sqlalchemy.orm import Session

from app.api.v1.camel import CamelModel
from app.db.model.assignment import AssignmentStatus, OrderAssignment
from app.db.model.user import User
from app.db.session import get_db
from app.integrations.salla import shared_salla_clients
from app.repository import assignment_repo
from app.services.assignment.engine import AssignmentEngine
from app.services.assignment.errors import AssignmentError, AssignmentNotFound, TransitionForbidden
from app.services.assignment.status_flow import advance_status
from app.services.auth_service import get_current_user

router = APIRouter(tags=["order-assignments"])


class AssignRequest(CamelModel):
    user_id: Optional[int] = None


class AssignmentSummary(CamelModel):
    id: int
    order_id: str
    order_number: Optional[str] = None
    status: str


class AssignResponse(CamelModel):
    success: bool = True
    assigned: int
    total_assignments: int
    assignments: List[AssignmentSummary] = Field(default_factory=list)
    message: Optional[str] = None


class AssignmentOut(AssignmentSummary):
    merchant_id: str
    user_id: int
    remote_status: Optional[str] = None
    remote_synced: bool
    order_snapshot: Optional[dict] = None
    assigned_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    notes: Optional[str] = None


class StatusUpdate(CamelModel):
    status: AssignmentStatus
    notes: Optional[str] = None


@lru_cache(maxsize=1)
def get_assignment_engine() -> AssignmentEngine:
    """进程内只装配一次：token / 状态字典缓存跟着 Salla 客户端走。"""
    orders_api, statuses = shared_salla_clients()
    return AssignmentEngine(orders_api, statuses)


@router.post("/assign", response_model=AssignResponse)
def assign(
    body: Optional[AssignRequest] = Body(None),
    db: Session = Depends(get_db),
    current: User = Depends(get_current_user),
    engine: AssignmentEngine = Depends(get_assignment_engine),
) -> AssignResponse:
    if body is None or body.user_id is None:
        raise HTTPException(status_code=400, detail="userId is required")
    if body.user_id != current.id and not current.is_operator:
        raise HTTPException(status_code=403, detail="cannot assign orders for another user")

    try:
        outcome = engine.assign(db, body.user_id)
    except AssignmentError as exc:
        raise _to_http(exc) from exc

    return AssignResponse(
        assigned=outcome.assigned,
        total_assignments=outcome.total_assignments,
        assignments=[AssignmentSummary.model_validate(a) for a in outcome.assignments],
        message=outcome.message,
    )


@router.get("/order-assignments/mine", response_model=List[AssignmentOut])
def my_assignments(
    active_only: bool = False,
    db: Session = Depends(get_db),
    current: User = Depends(get_current_user),
) -> List[AssignmentOut]:
    rows = assignment_repo.list_for_user(db, current.id, active_only=active_only)
    return [_to_out(r) for r in rows]


@router.post("/order-assignments/{assignment_id}/status", response_model=AssignmentOut)
def update_status(
    assignment_id: int = Path(..., ge=1),
    body: StatusUpdate = ...,
    db: Session = Depends(get_db),
    current: User = Depends(get_current_user),
) -> AssignmentOut:
    try:
        row = assignment_repo.get(db, assignment_id)
        if row is None:
            raise AssignmentNotFound(assignment_id)
        if row.user_id != current.id and not current.is_operator:
            raise TransitionForbidden("assignment belongs to another user")
        row = advance_status(db, row, body.status.value, is_operator=current.is_operator, notes=body.notes)
    except AssignmentError as exc:
        raise _to_http(exc) from exc
    return _to_out(row)


def _to_http(exc: AssignmentError) -> HTTPException:
    return HTTPException(status_code=exc.http_status, detail=str(exc))


def _to_out(row: OrderAssignment) -> AssignmentOut:
    return AssignmentOut(
        id=row.id,
        order_id=row.order_id,
        order_number=row.order_number,
        status=row.status,
        merchant_id=row.merchant_id,
        user_id=row.user_id,
        remote_status=row.remote_status,
        remote_synced=bool(row.remote_synced),
        order_snapshot=row.order_snapshot,
        assigned_at=row.assigned_at.isoformat() if row.assigned_at else None,
        started_at=row.started_at.isoformat() if row.started_at else None,
        completed_at=row.completed_at.isoformat() if row.completed_at else None,
        notes=row.notes,
    )

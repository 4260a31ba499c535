# 加急订单名单（仅运营）：查看 + 追加
# 运营手里的是小票上的订单号（reference_id），入库前先到 Salla 换成内部 id，分单排序按内部 id 匹配
from functools import lru_cache
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import AliasChoices, Field, StringConstraints, model_validator
from sqlalchemy.orm import Session

from app.api.v1.camel import CamelModel
from app.core.config import settings
from app.db.model.priority import HighPriorityOrder
from app.db.model.user import User
from app.db.session import get_db
from app.integrations.salla import CandidateOrder, SallaOrdersAPI, SallaPayloadError, shared_salla_clients
from app.repository import priority_repo
from app.services.auth_service import require_operator

router = APIRouter(
    prefix="/priority-orders",
    tags=["priority-orders"],
    dependencies=[Depends(require_operator)],
)

OrderRef = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)]


class PriorityFlagIn(CamelModel):
    order_number: Optional[OrderRef] = Field(
        default=None, validation_alias=AliasChoices("orderNumber", "orderReference", "order_number"),
    )
    order_id: Optional[OrderRef] = None
    reason: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _need_order(self) -> "PriorityFlagIn":
        if not self.order_number and not self.order_id:
            raise ValueError("orderNumber is required")
        return self


class PriorityEntryOut(CamelModel):
    id: int
    rank: int
    order_id: str
    order_number: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[str] = None


@lru_cache(maxsize=1)
def get_order_lookup() -> SallaOrdersAPI:
    orders_api, _ = shared_salla_clients()
    return orders_api


@router.get("", response_model=List[PriorityEntryOut])
def list_priority_orders(db: Session = Depends(get_db)) -> List[PriorityEntryOut]:
    """按标记先后返回；rank 0 最优先。"""
    rows = priority_repo.list_entries(db, settings.SALLA_MERCHANT_ID)
    return [_to_out(row, idx) for idx, row in enumerate(rows)]


@router.post("", response_model=PriorityEntryOut, status_code=status.HTTP_201_CREATED)
def flag_priority_order(
    body: PriorityFlagIn,
    response: Response,
    db: Session = Depends(get_db),
    current: User = Depends(require_operator),
    lookup: SallaOrdersAPI = Depends(get_order_lookup),
) -> PriorityEntryOut:
    order = _resolve_order(lookup, body)
    row, created = priority_repo.flag_order(
        db,
        merchant_id=settings.SALLA_MERCHANT_ID,
        order_id=order.order_id,
        order_number=order.order_number,
        reason=body.reason,
        notes=body.notes,
        created_by=current.id,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    ranks = priority_repo.rank_map(db, settings.SALLA_MERCHANT_ID)
    return _to_out(row, ranks.get(row.order_id, 0))


def _resolve_order(lookup: SallaOrdersAPI, body: PriorityFlagIn) -> CandidateOrder:
    """订单号优先；只给了内部 id 时也要到 Salla 确认这单存在。"""
    if body.order_number:
        found = lookup.find_by_reference(body.order_number)
    else:
        found = lookup.find_by_id(body.order_id)

    if not found.ok:
        if isinstance(found.error, SallaPayloadError):
            raise HTTPException(status_code=422, detail="order returned by Salla has no usable id")
        raise HTTPException(status_code=502, detail="Salla is unavailable, try again")
    if found.value is None:
        raise HTTPException(status_code=404, detail="order not found in Salla")
    return found.value


def _to_out(row: HighPriorityOrder, rank: int) -> PriorityEntryOut:
    return PriorityEntryOut(
        id=row.id,
        rank=rank,
        order_id=row.order_id,
        order_number=row.order_number,
        reason=row.reason,
        notes=row.notes,
        created_by=row.created_by,
        created_at=row.created_at.isoformat() if row.created_at else None,
    )

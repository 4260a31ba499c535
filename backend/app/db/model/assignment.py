from __future__ import annotations
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text,
    UniqueConstraint, func, text,
)
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base


class AssignmentStatus(str, Enum):
    ASSIGNED = "assigned"
    PREPARING = "preparing"
    SHIPPED = "shipped"
    COMPLETED = "completed"
    REMOVED = "removed"


# shipped 仍然占用备货员的名额，直到 completed / removed
ACTIVE_STATUSES = (
    AssignmentStatus.ASSIGNED.value,
    AssignmentStatus.PREPARING.value,
    AssignmentStatus.SHIPPED.value,
)
TERMINAL_STATUSES = (
    AssignmentStatus.COMPLETED.value,
    AssignmentStatus.REMOVED.value,
)

_ALL_STATUSES_SQL = ", ".join(f"'{s.value}'" for s in AssignmentStatus)
_ACTIVE_WHERE = text("status IN ({})".format(", ".join(f"'{s}'" for s in ACTIVE_STATUSES)))

# 唯一索引名：assignment_repo 靠它们识别“抢单失败”的具体原因
UQ_USER_ORDER = "uq_order_assignments_user_id_order_id"
UQ_ACTIVE_ORDER = "uq_order_assignments_active_order"
UQ_ACTIVE_USER = "uq_order_assignments_active_user"


"""
  order_assignments 表：一行 = 一个备货员认领一个 Salla 订单
  - (user_id, order_id) 全量唯一：同一个人不能两次认领同一单
  - (merchant_id, order_id) 在活动状态内唯一：一单同时只属于一个人
  - (user_id) 在活动状态内唯一：一人同时只有一单
  三个唯一约束是并发抢单的互斥原语，不依赖进程内锁
"""
class OrderAssignment(Base):

    __tablename__ = "order_assignments"

    id:          Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    merchant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    order_id:    Mapped[str] = mapped_column(String(64), nullable=False)
    order_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_id:     Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    status:        Mapped[str] = mapped_column(String(16), nullable=False, default=AssignmentStatus.ASSIGNED.value,
                                               server_default=AssignmentStatus.ASSIGNED.value)
    remote_status: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)          # 最近一次同步时 Salla 的 slug / id
    remote_synced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    order_snapshot: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)   # 认领时的订单详情 + items

    assigned_at:  Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    started_at:   Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    notes:        Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at:   Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "order_id", name=UQ_USER_ORDER),
        Index(UQ_ACTIVE_ORDER, "merchant_id", "order_id", unique=True,
              postgresql_where=_ACTIVE_WHERE, sqlite_where=_ACTIVE_WHERE),
        Index(UQ_ACTIVE_USER, "user_id", unique=True,
              postgresql_where=_ACTIVE_WHERE, sqlite_where=_ACTIVE_WHERE),
        Index("ix_order_assignments_merchant_status", "merchant_id", "status"),
        CheckConstraint(f"status IN ({_ALL_STATUSES_SQL})", name="status_valid"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

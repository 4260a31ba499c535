from __future__ import annotations
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base


"""
  high_priority_orders 表：运营手动标记的加急订单
  - 只追加不修改；排名 = 插入顺序（created_at, id），越早标记越靠前
  - 删除由运营后台负责，本服务只读 + 追加
"""
class HighPriorityOrder(Base):

    __tablename__ = "high_priority_orders"

    id:           Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    merchant_id:  Mapped[str] = mapped_column(String(64), nullable=False)
    order_id:     Mapped[str] = mapped_column(String(64), nullable=False)
    order_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    reason:       Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes:        Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by:   Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at:   Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("merchant_id", "order_id"),
        Index("ix_high_priority_orders_merchant_created", "merchant_id", "created_at"),
    )

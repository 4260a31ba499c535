from __future__ import annotations
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base


"""
  salla_auth 表：Salla OAuth token
  - 由外部的 token 刷新任务写入（每 7 天强制刷新）；本服务只读
"""
class SallaAuth(Base):

    __tablename__ = "salla_auth"

    merchant_id:  Mapped[str] = mapped_column(String(64), primary_key=True)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at:   Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at:   Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

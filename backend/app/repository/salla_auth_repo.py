from __future__ import annotations
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.model.salla_auth import SallaAuth


def get_by_merchant(db: Session, merchant_id: str) -> Optional[SallaAuth]:
    stmt = select(SallaAuth).where(SallaAuth.merchant_id == str(merchant_id))
    return db.scalars(stmt).first()


def store_token(db: Session, merchant_id: str, access_token: str, expires_at: Optional[datetime]) -> SallaAuth:
    """有则更新，无则插入。正式环境由 token 刷新任务调用；本仓库里只给脚本 / 测试用。"""
    row = get_by_merchant(db, merchant_id)
    if row is None:
        row = SallaAuth(merchant_id=str(merchant_id), access_token=access_token, expires_at=expires_at)
        db.add(row)
    else:
        row.access_token = access_token
        row.expires_at = expires_at
    db.commit()
    db.refresh(row)
    return row

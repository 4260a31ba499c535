from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.core.config import settings
from app.repository import assignment_repo


@dataclass(frozen=True)
class SlotCheck:
    available: bool
    active_count: int


def request_slot(db: Session, user_id: int) -> SlotCheck:
    """
    快速判断：手上还有活动单（assigned/preparing/shipped）就不用去拉远端了。
    和后面的认领不在同一事务里，真正的互斥靠 order_assignments 的部分唯一索引。
    """
    active = assignment_repo.count_active_for_user(db, user_id)
    return SlotCheck(available=active < settings.ASSIGN_SLOTS_PER_USER, active_count=active)

# 聚合导入所有模型，供 Alembic 发现

from .user import User
from .salla_auth import SallaAuth
from .assignment import (
    OrderAssignment,
    AssignmentStatus,
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
)
from .priority import HighPriorityOrder

__all__ = [
    # accounts
    "User", "SallaAuth",
    # assignment
    "OrderAssignment", "AssignmentStatus", "ACTIVE_STATUSES", "TERMINAL_STATUSES",
    "HighPriorityOrder",
]

"""
分单服务层异常：路由层统一映射成 HTTP 状态码（见 api/v1/order_assignments.py）。
ClaimConflict 系列由 assignment_repo 在唯一约束冲突时抛出，只在引擎内部消化，不会冒到路由。
"""
from __future__ import annotations

from typing import Optional


class AssignmentError(Exception):
    """Base for assignment service errors."""

    http_status: int = 500


class UserNotFound(AssignmentError):
    http_status = 404

    def __init__(self, user_id: int) -> None:
        super().__init__(f"user {user_id} not found")
        self.user_id = user_id


class UserInactive(AssignmentError):
    http_status = 400

    def __init__(self, user_id: int) -> None:
        super().__init__(f"user {user_id} is inactive")
        self.user_id = user_id


class RemoteFetchFailure(AssignmentError):
    """所有状态过滤值都拉取失败。"""

    http_status = 500


class RemoteAuthUnavailable(RemoteFetchFailure):
    """拿不到 Salla access token，或 token 刷新后仍被拒。"""


class AssignmentNotFound(AssignmentError):
    http_status = 404

    def __init__(self, assignment_id: int) -> None:
        super().__init__(f"assignment {assignment_id} not found")
        self.assignment_id = assignment_id


class InvalidTransition(AssignmentError):
    http_status = 409

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"cannot move assignment from {current!r} to {target!r}")
        self.current = current
        self.target = target


class ClaimConflict(AssignmentError):
    """insert 撞上唯一约束。constraint 为命中的索引名（识别不出时为 None）。"""

    http_status = 409

    def __init__(self, order_id: str, user_id: int, constraint: Optional[str] = None) -> None:
        super().__init__(f"claim conflict order_id={order_id} user_id={user_id} constraint={constraint}")
        self.order_id = order_id
        self.user_id = user_id
        self.constraint = constraint


class ClaimRaceLost(ClaimConflict):
    """这单已被别人（或自己以前）认领：跳过，换下一单。"""


class SlotAlreadyFilled(ClaimConflict):
    """并发的另一次分单已经给这个人占了名额：停止循环。"""


class TransitionForbidden(AssignmentError):
    """备货员不能操作别人的单，也不能自己把单移除（只有运营可以）。"""

    http_status = 403

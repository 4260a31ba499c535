"""
自动分单引擎（每个 HTTP 请求跑一次，可多进程并发）：
   1) 名额检查：手上有活动单直接返回 assigned=0，不访问远端；
   2) 拉候选单：按状态字典给出的“新订单”过滤值拉取，最旧优先；
   3) 去重 + 排序：去掉已被认领的，加急名单优先，其余保持拉取顺序；
   4) 逐个认领：insert（唯一约束互斥）→ 远端切“备货中” → 失败则删除刚插入的行，换下一单；
   5) 认领并同步成功一单即停；候选单耗尽不是错误。
不持有任何进程内锁：并发正确性完全依赖 order_assignments 的唯一索引。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from sqlalchemy.orm import Session

from app.core.config import settings
from app.db.model.assignment import OrderAssignment
from app.integrations.salla.errors import RemoteResult, SallaAuthError
from app.integrations.salla.normalizers import CandidateOrder
from app.integrations.salla.statuses import StatusPlan
from app.repository import assignment_repo, priority_repo, user_repo
from app.services.assignment import capacity, ranking
from app.services.assignment.errors import (
    ClaimRaceLost, RemoteAuthUnavailable, RemoteFetchFailure, SlotAlreadyFilled,
    UserInactive, UserNotFound,
)
from app.utils.serialization import to_jsonable

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "لديك طلب نشط بالفعل"
NO_ORDERS_MESSAGE = "لا توجد طلبات جديدة متاحة حالياً"


class OrdersSource(Protocol):
    def fetch_candidates(self, status_filters: List[str], limit: int) -> RemoteResult[List[CandidateOrder]]: ...
    def fetch_detail(self, candidate: CandidateOrder) -> CandidateOrder: ...
    def move_to_preparation(self, order_id: str, status_id: int) -> RemoteResult: ...


class StatusSource(Protocol):
    def resolve_plan(self) -> StatusPlan: ...


@dataclass
class AssignStats:
    fetched: int = 0
    already_claimed: int = 0
    prioritized: int = 0
    race_lost: int = 0
    sync_failed: int = 0


@dataclass
class AssignOutcome:
    user_id: int
    assignments: List[OrderAssignment] = field(default_factory=list)
    total_assignments: int = 0
    message: Optional[str] = None
    stats: AssignStats = field(default_factory=AssignStats)

    @property
    def assigned(self) -> int:
        return len(self.assignments)


class AssignmentEngine:
    """
    orders_api / statuses 由外部注入（生产用 build_salla_clients()，测试用假的），
    引擎本身不持有缓存，也不关心 token 从哪来。
    """

    def __init__(
        self,
        orders_api: OrdersSource,
        statuses: StatusSource,
        *,
        merchant_id: Optional[str] = None,
        slots_per_user: Optional[int] = None,
        fetch_limit: Optional[int] = None,
    ) -> None:
        self.orders_api = orders_api
        self.statuses = statuses
        self.merchant_id = str(merchant_id or settings.SALLA_MERCHANT_ID)
        self.slots_per_user = slots_per_user or settings.ASSIGN_SLOTS_PER_USER
        self.fetch_limit = fetch_limit or settings.assign_fetch_limit


    def assign(self, db: Session, user_id: int) -> AssignOutcome:
        user = user_repo.get_by_id(db, user_id)
        if user is None:
            raise UserNotFound(user_id)
        if not user.is_active:
            raise UserInactive(user_id)

        # 1) 名额
        slot = capacity.request_slot(db, user.id)
        if not slot.available:
            logger.info("assign.user_busy user_id=%s active=%s", user.id, slot.active_count)
            return AssignOutcome(user_id=user.id, total_assignments=slot.active_count, message=BUSY_MESSAGE)

        # 2) 候选单
        plan = self.statuses.resolve_plan()
        logger.info("assign.fetching user_id=%s filters=%s limit=%s", user.id, plan.new_order_filters, self.fetch_limit)
        fetched = self.orders_api.fetch_candidates(plan.new_order_filters, self.fetch_limit)
        if not fetched.ok:
            logger.error("assign.fetch_failed user_id=%s err=%s", user.id, fetched.error)
            if isinstance(fetched.error, SallaAuthError):
                raise RemoteAuthUnavailable(str(fetched.error))
            raise RemoteFetchFailure(str(fetched.error))
        candidates = fetched.value or []

        # 3) 去重 + 排序（每次都重新读加急名单和已认领集合）
        stats = AssignStats(fetched=len(candidates))
        claimed = assignment_repo.claimed_order_ids(db, self.merchant_id, user.id, [c.order_id for c in candidates])
        ranks = priority_repo.rank_map(db, self.merchant_id)
        ranked = ranking.rank(candidates, ranks, claimed)
        stats.already_claimed = len(candidates) - len(ranked)
        stats.prioritized = sum(1 for c in ranked if c.order_id in ranks)
        logger.info("assign.candidates user_id=%s fetched=%s already_claimed=%s available=%s prioritized=%s",
            user.id, stats.fetched, stats.already_claimed, len(ranked), stats.prioritized)

        # 4) 逐个认领
        assignments = self._claim_loop(db, user.id, ranked, plan, stats)

        if stats.race_lost:
            logger.info("assign.skipped_race_lost user_id=%s count=%s", user.id, stats.race_lost)
        if stats.sync_failed:
            logger.warning("assign.skipped_sync_failed user_id=%s count=%s", user.id, stats.sync_failed)

        total = assignment_repo.count_active_for_user(db, user.id)
        logger.info("assign.done user_id=%s assigned=%s total_active=%s orders=%s",
            user.id, len(assignments), total, [a.order_id for a in assignments])
        return AssignOutcome(
            user_id=user.id,
            assignments=assignments,
            total_assignments=total,
            message=None if assignments else NO_ORDERS_MESSAGE,
            stats=stats,
        )


    def _claim_loop(
        self,
        db: Session,
        user_id: int,
        ranked: List[CandidateOrder],
        plan: StatusPlan,
        stats: AssignStats,
    ) -> List[OrderAssignment]:
        assignments: List[OrderAssignment] = []
        for candidate in ranked:
            if len(assignments) >= self.slots_per_user:
                break

            order = self.orders_api.fetch_detail(candidate)
            try:
                row = assignment_repo.create_claim(
                    db,
                    merchant_id=self.merchant_id,
                    user_id=user_id,
                    order_id=order.order_id,
                    order_number=order.order_number,
                    snapshot=to_jsonable(order.snapshot()),
                    remote_status=order.remote_status or (plan.new_order_filters[0] if plan.new_order_filters else None),
                )
            except ClaimRaceLost as e:
                stats.race_lost += 1
                logger.warning("assign.claim_race_lost order_id=%s user_id=%s constraint=%s",
                    order.order_id, user_id, e.constraint)
                continue
            except SlotAlreadyFilled:
                logger.info("assign.slot_filled_concurrently order_id=%s user_id=%s", order.order_id, user_id)
                break

            sync = self.orders_api.move_to_preparation(row.order_id, plan.preparing_status_id)
            if not sync.ok:
                stats.sync_failed += 1
                logger.warning("assign.compensate order_id=%s user_id=%s assignment_id=%s err=%s",
                    row.order_id, user_id, row.id, sync.error)
                assignment_repo.delete_claim(db, row)
                continue

            row = assignment_repo.mark_synced(db, row, plan.preparing_status_slug)
            logger.info("assign.claimed order_id=%s order_number=%s user_id=%s assignment_id=%s",
                row.order_id, row.order_number, user_id, row.id)
            assignments.append(row)
        return assignments

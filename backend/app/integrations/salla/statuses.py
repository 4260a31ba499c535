"""
Salla 订单状态字典（/orders/statuses）：
  - 进程内缓存，过期后按需重新拉取；拉取失败返回内置默认值（不缓存失败结果）；
  - resolve_plan() 给分单引擎用：要查询哪些“新订单”状态、认领后切到哪个“备货中”状态。
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from app.core.config import settings
from app.integrations.salla.http_client import SallaHttpClient

logger = logging.getLogger(__name__)

STATUSES_ENDPOINT = "/orders/statuses"
NEW_ORDER_SLUG = "under_review"
NEW_ORDER_NAMES = {"طلب جديد", "new order"}


@dataclass(frozen=True)
class SallaOrderStatus:
    id: int
    name: str
    slug: Optional[str] = None
    type: str = "original"
    is_active: bool = True
    parent_id: Optional[int] = None
    original_id: Optional[int] = None


@dataclass(frozen=True)
class StatusPlan:
    new_order_filters: List[str] = field(default_factory=list)
    preparing_status_id: int = 0
    preparing_status_slug: str = ""
    preparing_status_name: Optional[str] = None


DEFAULT_STATUSES: List[SallaOrderStatus] = [
    SallaOrderStatus(id=1473353380, name="بإنتظار الدفع", slug="payment_pending"),
    SallaOrderStatus(id=566146469, name="تحت المراجعة", slug="under_review"),
    SallaOrderStatus(id=449146439, name="طلب جديد", slug="under_review", type="custom", original_id=566146469),
    SallaOrderStatus(id=1939592358, name="قيد التنفيذ", slug="in_progress"),
    SallaOrderStatus(id=1956875584, name="جاري التجهيز", slug="in_progress", type="custom", original_id=1939592358),
    SallaOrderStatus(id=1298199463, name="تم التنفيذ", slug="completed"),
    SallaOrderStatus(id=349994915, name="جاري التوصيل", slug="delivering"),
    SallaOrderStatus(id=1723506348, name="تم التوصيل", slug="delivered"),
    SallaOrderStatus(id=814202285, name="تم الشحن", slug="shipped"),
    SallaOrderStatus(id=525144736, name="ملغي", slug="canceled"),
    SallaOrderStatus(id=989286562, name="مسترجع", slug="restored"),
    SallaOrderStatus(id=1548352431, name="قيد الإسترجاع", slug="restoring"),
]


def parse_status(raw: Dict[str, Any]) -> Optional[SallaOrderStatus]:
    """把 /orders/statuses 的一条记录转成 SallaOrderStatus；缺 id 的丢弃。"""
    try:
        status_id = int(raw.get("id"))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    parent = raw.get("parent") if isinstance(raw.get("parent"), dict) else {}
    original = raw.get("original") if isinstance(raw.get("original"), dict) else {}
    return SallaOrderStatus(
        id=status_id,
        name=str(raw.get("name") or ""),
        slug=(str(raw["slug"]) if raw.get("slug") else None),
        type=str(raw.get("type") or "original"),
        is_active=bool(raw.get("is_active", True)),
        parent_id=_int_or_none(parent.get("id")),
        original_id=_int_or_none(original.get("id")),
    )


def build_plan(statuses: List[SallaOrderStatus]) -> StatusPlan:
    """
    新订单过滤值：原生 under_review 的 slug + 所有挂在它下面（parent/original）或叫“新订单”的自定义状态 id。
    备货中状态：第一个 slug == SALLA_PREPARING_STATUS_SLUG 的状态，找不到用配置兜底。
    """
    filters: List[str] = []
    base = next((s for s in statuses if s.slug == NEW_ORDER_SLUG and s.type == "original"), None)
    if base is not None:
        filters.append(NEW_ORDER_SLUG)
    for s in statuses:
        if not s.is_active or s.type != "custom":
            continue
        linked = base is not None and base.id in (s.parent_id, s.original_id)
        named = s.name.strip().lower() in NEW_ORDER_NAMES
        if linked or named:
            filters.append(str(s.id))
    filters = list(dict.fromkeys(filters)) or settings.new_order_filters

    slug = settings.SALLA_PREPARING_STATUS_SLUG
    preparing = next((s for s in statuses if s.slug == slug), None)
    if preparing is None:
        return StatusPlan(
            new_order_filters=filters,
            preparing_status_id=settings.SALLA_PREPARING_STATUS_ID,
            preparing_status_slug=slug,
        )
    return StatusPlan(
        new_order_filters=filters,
        preparing_status_id=preparing.id,
        preparing_status_slug=preparing.slug or slug,
        preparing_status_name=preparing.name,
    )


class SallaStatusCatalog:
    """状态字典缓存；注入到分单引擎，测试时可换成假的。"""

    def __init__(
        self,
        http: SallaHttpClient,
        ttl_sec: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.http = http
        self.ttl_sec = settings.SALLA_STATUS_CACHE_TTL_SEC if ttl_sec is None else ttl_sec
        self._clock = clock
        self._cached: Optional[List[SallaOrderStatus]] = None
        self._fetched_at: float = 0.0


    def statuses(self) -> List[SallaOrderStatus]:
        now = self._clock()
        if self._cached is not None and (now - self._fetched_at) < self.ttl_sec:
            return self._cached

        result = self.http.get_json(STATUSES_ENDPOINT)
        if not result.ok:
            logger.error("salla.statuses.fetch_failed err=%s; using defaults", result.error)
            return list(DEFAULT_STATUSES)

        data = (result.value or {}).get("data") if isinstance(result.value, dict) else None
        parsed = [s for s in (parse_status(r) for r in (data or []) if isinstance(r, dict)) if s is not None]
        if not parsed:
            logger.warning("salla.statuses.empty_payload; using defaults")
            return list(DEFAULT_STATUSES)

        logger.info("salla.statuses.ok count=%s", len(parsed))
        self._cached = parsed
        self._fetched_at = now
        return parsed


    def resolve_plan(self) -> StatusPlan:
        return build_plan(self.statuses())


    def invalidate(self) -> None:
        self._cached = None


def _int_or_none(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None

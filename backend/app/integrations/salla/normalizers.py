"""
领域映射（纯函数）：把 Salla 返回的订单字典（字段时有时无）转换成强类型的 CandidateOrder。

取值顺序（从前往后，第一个可用的为准）：
  - 订单 id:      id → order_id → orderId → reference_id → referenceId
  - 订单号:       reference_id → referenceId → id
  - 排序时间:     date.date（下单时间）→ created_at → createdAt → updated_at → updatedAt，都解析不了按 0（最旧）
                  无偏移的时间按 date.timezone（店铺时区）解释
  - 远端状态:     status.slug → status.id → 纯字符串 status
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone, tzinfo
from functools import lru_cache
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

_ID_KEYS = ("id", "order_id", "orderId", "reference_id", "referenceId")
_NUMBER_KEYS = ("reference_id", "referenceId", "id")
_CREATED_KEYS = ("created_at", "createdAt")
_UPDATED_KEYS = ("updated_at", "updatedAt")

# Salla 常见格式："2024-05-01 09:00:00.000000"；也兼容 ISO 带 Z / 时区
_TS_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})[ T](\d{2}:\d{2}(?::\d{2})?)(\.\d+)?\s*(Z|[+-]\d{2}:?\d{2})?$")


@dataclass(frozen=True)
class CandidateOrder:
    order_id: str
    order_number: str
    placed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    status_slug: Optional[str] = None
    status_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)
    items: List[Dict[str, Any]] = field(default_factory=list)
    fetch_position: int = 0

    @property
    def sort_key(self) -> float:
        """最早可用的时间戳（epoch 秒）；都没有时为 0，排在最前。"""
        for ts in (self.placed_at, self.created_at, self.updated_at):
            if ts is not None:
                return ts.timestamp()
        return 0.0

    @property
    def remote_status(self) -> Optional[str]:
        return self.status_slug or self.status_id

    def snapshot(self) -> Dict[str, Any]:
        """写入 order_snapshot 的内容：原始 payload + items。"""
        data = dict(self.payload)
        data["items"] = list(self.items)
        return data


def resolve_order_id(raw: Dict[str, Any]) -> Optional[str]:
    for key in _ID_KEYS:
        value = raw.get(key)
        if value is None:
            continue
        s = str(value).strip()
        if s:
            return s
    return None


def resolve_order_number(raw: Dict[str, Any], fallback: str) -> str:
    for key in _NUMBER_KEYS:
        value = raw.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return fallback


@lru_cache(maxsize=32)
def _zone(name: Optional[str]) -> tzinfo:
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(str(name))
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("salla.orders.unknown_timezone tz=%s fallback=UTC", name)
        return timezone.utc


def parse_timestamp(value: Any, zone: Optional[str] = None) -> Optional[datetime]:
    """
    兼容几种形式：
    - datetime 对象
    - 'YYYY-MM-DD HH:MM:SS(.ffffff)' / ISO 8601（可带 Z 或 ±HH:MM）
    - {"date": "...", "timezone": "Asia/Riyadh"}：没有显式偏移时按 timezone 解释
    自带偏移的以偏移为准；既没偏移也没 zone 的按 UTC。
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=_zone(zone))
    if isinstance(value, dict):
        return parse_timestamp(value.get("date"), value.get("timezone") or zone)

    s = str(value).strip()
    m = _TS_RE.match(s)
    if not m:
        return None
    day, clock, frac, tz = m.groups()
    if clock.count(":") == 1:
        clock += ":00"
    frac = "." + frac[1:7].ljust(6, "0") if frac else ""  # 统一成 6 位微秒
    if tz == "Z":
        tz = "+00:00"
    elif tz and ":" not in tz:
        tz = f"{tz[:3]}:{tz[3:]}"
    try:
        parsed = datetime.fromisoformat(f"{day}T{clock}{frac}{tz or ''}")
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=_zone(zone))


def _first_timestamp(raw: Dict[str, Any], keys: tuple[str, ...], zone: Optional[str] = None) -> Optional[datetime]:
    for key in keys:
        ts = parse_timestamp(raw.get(key), zone)
        if ts is not None:
            return ts
    return None


def _status_parts(raw: Dict[str, Any]) -> tuple[Optional[str], Optional[str]]:
    status = raw.get("status")
    if isinstance(status, dict):
        slug = status.get("slug")
        sid = status.get("id")
        return (str(slug) if slug else None), (str(sid) if sid is not None else None)
    if isinstance(status, str) and status.strip():
        return status.strip(), None
    return None, None


def normalize_order(raw: Dict[str, Any], position: int = 0) -> Optional[CandidateOrder]:
    """
    输入: Salla 订单列表 / 详情里的一条订单
    输出: CandidateOrder；没有任何可用 id 的订单返回 None（上层丢弃并记日志）
    """
    if not isinstance(raw, dict):
        return None
    order_id = resolve_order_id(raw)
    if order_id is None:
        return None

    slug, status_id = _status_parts(raw)
    date_field = raw.get("date")
    # 同一单的 created_at / updated_at 没带偏移时，跟 date 用同一个店铺时区
    zone = date_field.get("timezone") if isinstance(date_field, dict) else None
    items = raw.get("items")
    return CandidateOrder(
        order_id=order_id,
        order_number=resolve_order_number(raw, order_id),
        placed_at=parse_timestamp(date_field) if date_field is not None else None,
        created_at=_first_timestamp(raw, _CREATED_KEYS, zone),
        updated_at=_first_timestamp(raw, _UPDATED_KEYS, zone),
        status_slug=slug,
        status_id=status_id,
        payload=dict(raw),
        items=list(items) if isinstance(items, list) else [],
        fetch_position=position,
    )


def merge_detail(summary: CandidateOrder, detail: Optional[Dict[str, Any]], items: List[Dict[str, Any]]) -> CandidateOrder:
    """
    详情接口成功时用详情覆盖摘要（id 以摘要为准，避免详情缺字段导致认领错单）；
    失败（detail=None）时保留摘要，只挂上 items。
    """
    if not detail:
        return replace(summary, items=list(items))

    merged = normalize_order(detail, summary.fetch_position)
    if merged is None:
        return replace(summary, items=list(items))
    return replace(
        merged,
        order_id=summary.order_id,
        order_number=resolve_order_number(detail, summary.order_number),
        placed_at=merged.placed_at or summary.placed_at,
        created_at=merged.created_at or summary.created_at,
        updated_at=merged.updated_at or summary.updated_at,
        status_slug=merged.status_slug or summary.status_slug,
        status_id=merged.status_id or summary.status_id,
        items=list(items),
    )

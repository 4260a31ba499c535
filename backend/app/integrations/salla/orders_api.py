"""
Salla 订单高层 API（给分单引擎用）：
   - fetch_candidates：按每个状态过滤值各拉一页（最旧优先），单个过滤值失败只告警跳过，全部失败才算失败；
     合并后按订单 id 去重，再按“最早可用时间”全局升序排序；
   - fetch_detail：订单详情 + 商品行，各自独立重试；商品行失败降级为空列表，详情失败降级为摘要；
   - find_by_reference / find_by_id：运营标记加急单时，把订单号解析成 Salla 内部 id；
   - move_to_preparation：认领成功后把远端状态切到“备货中”，只发一次不重试（失败由引擎回滚认领）。
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from app.integrations.salla.errors import RemoteResult, SallaFatalError, SallaPayloadError
from app.integrations.salla.http_client import SallaHttpClient
from app.integrations.salla.normalizers import CandidateOrder, merge_detail, normalize_order

logger = logging.getLogger(__name__)

ORDERS_ENDPOINT = "/orders"
ORDER_ITEMS_ENDPOINT = "/orders/items"


class SallaOrdersAPI:
    """封装 /orders 系列接口，处理多过滤值合并、去重、排序与降级。"""

    def __init__(self, http: SallaHttpClient) -> None:
        self.http = http


    def fetch_candidates(self, status_filters: Iterable[str], limit: int) -> RemoteResult[List[CandidateOrder]]:
        filters = [f for f in dict.fromkeys(str(v).strip() for v in status_filters) if f]
        if not filters:
            return RemoteResult.failure(SallaFatalError("no status filters to query"))

        per_page = max(1, int(limit))
        merged: List[CandidateOrder] = []
        seen: set[str] = set()
        succeeded = 0
        last_error = None

        for status_filter in filters:
            params = {"status": status_filter, "per_page": per_page, "sort_by": "created_at-asc"}
            result = self.http.get_json(ORDERS_ENDPOINT, params=params)
            if not result.ok:
                last_error = result.error
                logger.warning("salla.orders.filter_failed status=%s attempts=%s err=%s",
                    status_filter, result.attempts, result.error)
                continue

            rows = _extract_rows(result.value)
            if rows is None:
                last_error = SallaPayloadError(f"unexpected /orders payload for status={status_filter}")
                logger.warning("salla.orders.bad_payload status=%s type=%s", status_filter, type(result.value).__name__)
                continue

            succeeded += 1
            dropped = 0
            for raw in rows:
                order = normalize_order(raw)
                if order is None:
                    dropped += 1
                    continue
                if order.order_id in seen:
                    continue
                seen.add(order.order_id)
                merged.append(order)
            if dropped:
                logger.warning("salla.orders.rows_without_id status=%s dropped=%s", status_filter, dropped)

        if succeeded == 0:
            logger.error("salla.orders.all_filters_failed filters=%s", filters)
            return RemoteResult.failure(last_error or SallaFatalError("all status filters failed"))

        # sorted() 是稳定排序：同一时间戳保持各过滤值内的原始顺序
        ordered = sorted(merged, key=lambda o: o.sort_key)[:per_page]
        ordered = [_with_position(o, idx) for idx, o in enumerate(ordered)]
        logger.info("salla.orders.candidates filters=%s succeeded=%s unique=%s returned=%s",
            filters, succeeded, len(merged), len(ordered))
        return RemoteResult.success(ordered)


    def fetch_detail(self, candidate: CandidateOrder) -> CandidateOrder:
        """详情 + 商品行；任何一步失败都降级而不是放弃这个候选单。"""
        detail: Optional[Dict[str, Any]] = None
        res = self.http.get_json(f"{ORDERS_ENDPOINT}/{candidate.order_id}")
        if res.ok and isinstance(res.value, dict) and isinstance(res.value.get("data"), dict):
            detail = res.value["data"]
        else:
            logger.warning("salla.orders.detail_degraded order_id=%s err=%s", candidate.order_id, res.error)

        items: List[Dict[str, Any]] = []
        items_res = self.http.get_json(ORDER_ITEMS_ENDPOINT, params={"order_id": candidate.order_id})
        if items_res.ok:
            items = _extract_rows(items_res.value) or []
            logger.info("salla.orders.items order_id=%s count=%s", candidate.order_id, len(items))
        else:
            logger.warning("salla.orders.items_degraded order_id=%s err=%s", candidate.order_id, items_res.error)

        return merge_detail(candidate, detail, items)


    def find_by_reference(self, reference: str) -> RemoteResult[Optional[CandidateOrder]]:
        """
        按小票上的订单号（reference_id）找 Salla 内部 id。
        只认 reference_id 完全相同的那一行：找不到返回 success(None)，命中但没有 id 算 payload 错误。
        """
        ref = str(reference).strip().lstrip("#")
        result = self.http.get_json(ORDERS_ENDPOINT, params={"reference_id": ref})
        if not result.ok:
            logger.warning("salla.orders.lookup_failed reference=%s err=%s", ref, result.error)
            return result

        rows = _extract_rows(result.value)
        if rows is None:
            return RemoteResult.failure(SallaPayloadError(f"unexpected /orders payload for reference_id={ref}"))
        matched = next((r for r in rows if str(r.get("reference_id", "")).strip() == ref), None)
        if matched is None:
            logger.info("salla.orders.reference_not_found reference=%s rows=%s", ref, len(rows))
            return RemoteResult.success(None)
        if matched.get("id") in (None, ""):
            return RemoteResult.failure(SallaPayloadError(f"order reference_id={ref} has no id"))
        return RemoteResult.success(normalize_order(matched))


    def find_by_id(self, order_id: str) -> RemoteResult[Optional[CandidateOrder]]:
        """GET /orders/{id}；Salla 回 404 时返回 success(None)。"""
        result = self.http.get_json(f"{ORDERS_ENDPOINT}/{str(order_id).strip()}")
        if not result.ok:
            if result.error is not None and result.error.status_code == 404:
                return RemoteResult.success(None)
            logger.warning("salla.orders.lookup_failed order_id=%s err=%s", order_id, result.error)
            return result
        data = result.value.get("data") if isinstance(result.value, dict) else None
        order = normalize_order(data) if isinstance(data, dict) and data.get("id") not in (None, "") else None
        if order is None:
            return RemoteResult.failure(SallaPayloadError(f"unexpected /orders/{order_id} payload"))
        return RemoteResult.success(order)


    def move_to_preparation(self, order_id: str, status_id: int) -> RemoteResult[Any]:
        """POST /orders/{id}/status；非 2xx 或网络异常即失败，不重试。"""
        result = self.http.post_json(
            f"{ORDERS_ENDPOINT}/{order_id}/status",
            json_body={"status_id": int(status_id)},
            retry=False,
        )
        if result.ok:
            logger.info("salla.orders.status_updated order_id=%s status_id=%s", order_id, status_id)
        else:
            logger.warning("salla.orders.status_update_failed order_id=%s status_id=%s err=%s",
                order_id, status_id, result.error)
        return result


def _extract_rows(payload: Any) -> Optional[List[Dict[str, Any]]]:
    """Salla 列表接口形如 {"status":200,"success":true,"data":[...],"pagination":{...}}。"""
    if isinstance(payload, dict):
        data = payload.get("data")
        if data is None:
            return []
        if isinstance(data, list):
            return [r for r in data if isinstance(r, dict)]
        return None
    if isinstance(payload, list):
        return [r for r in payload if isinstance(r, dict)]
    return None


def _with_position(order: CandidateOrder, position: int) -> CandidateOrder:
    from dataclasses import replace
    return replace(order, fetch_position=position)

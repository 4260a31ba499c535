"""
对外统一入口（Public Surface）：
- 分单引擎 / 路由 / 脚本都从这里 import，内部实现可自由演进。
- build_salla_clients() 按 settings 组装一套客户端（token 缓存 + 限流 + 状态字典缓存）。
"""
from functools import lru_cache
from typing import Optional, Tuple

from .errors import (
    RemoteResult, SallaError, SallaRetryableError, SallaFatalError, SallaAuthError, SallaPayloadError,
)
from .http_client import SallaHttpClient
from .normalizers import CandidateOrder, normalize_order, merge_detail, parse_timestamp
from .orders_api import SallaOrdersAPI
from .statuses import SallaOrderStatus, SallaStatusCatalog, StatusPlan, build_plan
from .token_provider import SallaTokenProvider, StaticTokenProvider


def build_salla_clients(merchant_id: Optional[str] = None) -> Tuple[SallaOrdersAPI, SallaStatusCatalog]:
    """生产用装配：一个 HTTP 客户端同时服务订单接口和状态字典。"""
    from app.core.config import settings
    from app.infrastructure.ratelimit import RedisTokenBucketLimiter

    merchant = merchant_id or settings.SALLA_MERCHANT_ID
    http = SallaHttpClient(
        SallaTokenProvider(merchant_id=merchant),
        global_limiter=RedisTokenBucketLimiter.from_settings(vendor="salla", account=merchant),
    )
    return SallaOrdersAPI(http), SallaStatusCatalog(http)


@lru_cache(maxsize=1)
def shared_salla_clients() -> Tuple[SallaOrdersAPI, SallaStatusCatalog]:
    """进程内共享一套：分单引擎和加急名单查单共用 token / 状态字典缓存和限流。"""
    return build_salla_clients()


__all__ = [
    "RemoteResult", "SallaError", "SallaRetryableError", "SallaFatalError", "SallaAuthError", "SallaPayloadError",
    "SallaHttpClient",
    "CandidateOrder", "normalize_order", "merge_detail", "parse_timestamp",
    "SallaOrdersAPI",
    "SallaOrderStatus", "SallaStatusCatalog", "StatusPlan", "build_plan",
    "SallaTokenProvider", "StaticTokenProvider",
    "build_salla_clients", "shared_salla_clients",
]

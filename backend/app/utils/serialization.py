from __future__ import annotations

import math
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any


def to_jsonable(value: Any):
    """
    把订单快照里可能混进来的 Python 值转成 JSON 列能存的基础类型。
    - 带时区的时间统一转 UTC ISO 字符串；naive 时间原样 isoformat
    - Enum 取 value；Decimal 转 float
    - NaN / inf 存成 None（Postgres JSONB 不接受）
    - dict 的 key 一律转字符串
    """
    if isinstance(value, Enum):
        return to_jsonable(value.value)
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (float, Decimal)):
        f = float(value)
        return None if math.isnan(f) or math.isinf(f) else f
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    return str(value)

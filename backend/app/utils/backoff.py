from __future__ import annotations


def calc_retry_delay(attempt: int, base_ms: int = 300, max_ms: int = 10_000) -> float:
    """
    指数退避（秒）：attempt 从 0 开始 → base, base*2, base*4 …，不超过 max_ms。
    默认 300ms → 0.3s, 0.6s, 1.2s
    """
    attempt = max(0, attempt)
    delay_ms = min(max_ms, base_ms * (2 ** attempt))
    return delay_ms / 1000.0

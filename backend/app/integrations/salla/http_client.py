"""
低层 HTTP 客户端：鉴权/限流/重试/401刷新
  - Bearer token 来自注入的 token provider（带缓存），401 时强制重读一次；
  - 网络异常 / 429 / 5xx 指数退避重试（300ms * 2**attempt），其它 4xx 不重试；
  - 不向上抛异常，统一返回 RemoteResult，由上层决定跳过还是中止；
  - 提供 get_json/post_json 两个入口，不关心业务字段结构。
"""

from __future__ import annotations
import logging, time, requests
from typing import Any, Callable, Dict, Optional, Protocol
from urllib.parse import urljoin

from app.core.config import settings
from app.infrastructure.ratelimit import RedisTokenBucketLimiter
from app.integrations.salla.errors import (
    RemoteResult, SallaAuthError, SallaError, SallaFatalError, SallaRetryableError,
)
from app.utils.backoff import calc_retry_delay

logger = logging.getLogger(__name__)

_MAX_RETRY_AFTER_SEC = 10.0


class TokenSource(Protocol):
    def get_token(self) -> Optional[str]: ...
    def invalidate(self) -> None: ...


class SallaHttpClient:
    """Salla Admin API v2 的低层 HTTP 客户端：负责鉴权、限流与重试。"""

    def __init__(
        self,
        token_provider: TokenSource,
        base_url: Optional[str] = None,
        connect_timeout: Optional[int] = None,
        read_timeout: Optional[int] = None,
        max_attempts: Optional[int] = None,
        backoff_ms: Optional[int] = None,
        rate_limit_per_min: Optional[int] = None,
        session: Optional[requests.Session] = None,
        global_limiter: Optional[RedisTokenBucketLimiter] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """允许覆盖基础配置以便测试或多商户场景。"""
        self.token_provider = token_provider
        self.base_url = (base_url or settings.SALLA_BASE_URL).rstrip("/") + "/"
        self.connect_timeout = connect_timeout or settings.SALLA_CONNECT_TIMEOUT
        self.read_timeout = read_timeout or settings.SALLA_READ_TIMEOUT
        self.max_attempts = max(1, max_attempts or settings.SALLA_HTTP_RETRIES)
        self.backoff_ms = settings.SALLA_HTTP_BACKOFF_MS if backoff_ms is None else backoff_ms
        self.rate_limit_per_min = settings.SALLA_RATE_LIMIT_PER_MIN if rate_limit_per_min is None else rate_limit_per_min

        self._session = session or requests.Session()
        self._global_limiter = global_limiter
        self._sleep = sleep
        self._last_request_ts: float = 0.0


    # ---------- Public ----------
    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None, *, retry: bool = True) -> RemoteResult[Any]:
        """发送 GET 请求并返回解析后的 JSON，附带鉴权/重试/限流。"""
        return self._request("GET", path, params=params, retry=retry)

    def post_json(self, path: str, json_body: Optional[Dict[str, Any]] = None, *, retry: bool = True) -> RemoteResult[Any]:
        """发送 POST 请求；retry=False 时只发一次（状态流转不重试）。"""
        return self._request("POST", path, json=json_body, retry=retry)

    def close(self) -> None:
        self._session.close()


    # ---------- Internals ----------
    def _request(self, method: str, path: str, *, retry: bool = True, **kwargs) -> RemoteResult[Any]:
        """执行一次逻辑调用（含重试），把所有失败收敛成 RemoteResult.failure。"""
        url = urljoin(self.base_url, path.lstrip("/"))
        max_attempts = self.max_attempts if retry else 1
        timeout = (self.connect_timeout, self.read_timeout)

        attempt = 0
        refreshed = False
        last_error: SallaError = SallaRetryableError(f"{method} {path}: no attempt made")

        while attempt < max_attempts:
            # 1) token：没有就直接失败，不重试
            token = self.token_provider.get_token()
            if not token:
                return RemoteResult.failure(SallaAuthError("no Salla access token available"), attempts=attempt)

            headers = {
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
                "Content-Type": "application/json",
            }

            # 2) 限流
            self._respect_rate_limit()

            # 3) 发请求
            start = time.perf_counter()
            retry_after: Optional[float] = None
            try:
                resp = self._session.request(method, url, headers=headers, timeout=timeout, **kwargs)
            except requests.RequestException as e:
                latency_ms = int((time.perf_counter() - start) * 1000)
                logger.warning("salla.http.request_exception method=%s path=%s latency_ms=%s attempt=%s/%s err=%s",
                    method, path, latency_ms, attempt + 1, max_attempts, type(e).__name__)
                last_error = SallaRetryableError(f"{method} {path}: request error: {e}")
            else:
                self._last_request_ts = time.monotonic()
                latency_ms = int((time.perf_counter() - start) * 1000)
                status = resp.status_code

                # 401：token 可能刚被外部任务刷新，重读一次再发（不计入重试次数）
                if status == 401 and not refreshed:
                    logger.info("salla.http.401_refresh method=%s path=%s", method, path)
                    self.token_provider.invalidate()
                    refreshed = True
                    continue

                if 200 <= status < 300:
                    logger.info("salla.http.ok method=%s path=%s status=%s latency_ms=%s attempt=%s",
                        method, path, status, latency_ms, attempt + 1)
                    return RemoteResult.success(self._as_json(resp, method, path), attempts=attempt + 1)

                snippet = (resp.text or "")[:300]
                if status == 429 or status >= 500:
                    logger.warning("salla.http.retryable_status method=%s path=%s status=%s latency_ms=%s attempt=%s/%s",
                        method, path, status, latency_ms, attempt + 1, max_attempts)
                    last_error = SallaRetryableError(f"{method} {path}: {status} {snippet}", status_code=status)
                    retry_after = _parse_retry_after(resp.headers.get("Retry-After")) if status == 429 else None
                else:
                    # 其它 4xx（含刷新后仍 401）：不重试
                    logger.warning("salla.http.client_error method=%s path=%s status=%s body=%s",
                        method, path, status, snippet)
                    err_cls = SallaAuthError if status in (401, 403) else SallaFatalError
                    return RemoteResult.failure(
                        err_cls(f"{method} {path}: {status} {snippet}", status_code=status),
                        attempts=attempt + 1,
                    )

            attempt += 1
            if attempt < max_attempts:
                delay = calc_retry_delay(attempt - 1, self.backoff_ms)
                if retry_after is not None:
                    delay = max(delay, retry_after)
                self._sleep(delay)

        logger.warning("salla.http.exhausted method=%s path=%s attempts=%s err=%s", method, path, attempt, last_error)
        return RemoteResult.failure(last_error, attempts=attempt)


    def _as_json(self, resp: requests.Response, method: str, path: str) -> Any:
        """2xx 响应体解析为 JSON；空 body 或非 JSON 返回 None（状态流转接口只看状态码）。"""
        if not (resp.content or b"").strip():
            return None
        try:
            return resp.json()
        except ValueError:
            logger.warning("salla.http.non_json method=%s path=%s status=%s", method, path, resp.status_code)
            return None


    # ---------- Helpers ----------
    def _respect_rate_limit(self) -> None:
        """优先使用 Redis 令牌桶限流；不可用时退回进程内节流。"""
        limiter = self._global_limiter
        if limiter is not None:
            try:
                for _ in range(20):
                    allowed, wait_ms = limiter.acquire_once()
                    if allowed:
                        return
                    self._sleep(max(0.001, (wait_ms or 1000) / 1000.0))
                return
            except Exception as e:  # noqa: BLE001  Redis 挂了不影响分单
                logger.warning("salla.ratelimit.global_error err=%s; falling back to process-local", e)
                self._global_limiter = None

        # --- 进程内节流（兜底） ---
        if not self.rate_limit_per_min or self.rate_limit_per_min <= 0:
            return
        interval = 60.0 / float(self.rate_limit_per_min)
        delta = time.monotonic() - self._last_request_ts
        if delta < interval:
            self._sleep(interval - delta)


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    try:
        return min(_MAX_RETRY_AFTER_SEC, max(0.0, float(value)))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None

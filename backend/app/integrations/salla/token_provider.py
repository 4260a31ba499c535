"""
Salla access token 来源（注入式，带过期缓存）：
  - token 的刷新由外部任务负责（OAuth refresh → salla_auth 表），这里只读；
  - 读到后在进程内缓存到 min(expires_at, now + ttl)，401 时由 http_client 调 invalidate() 强制重读；
  - 表里没有记录时退回 settings.SALLA_ACCESS_TOKEN（本地/测试）。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.repository import salla_auth_repo
from app.utils.clock import as_aware_utc, now_utc

logger = logging.getLogger(__name__)


@dataclass
class _CachedToken:
    value: str
    expires_at: datetime  # UTC


class StaticTokenProvider:
    """固定 token：脚本 / 测试用。"""

    def __init__(self, token: Optional[str]) -> None:
        self._token = token

    def get_token(self) -> Optional[str]:
        return self._token

    def invalidate(self) -> None:
        return None


class SallaTokenProvider:

    def __init__(
        self,
        merchant_id: Optional[str] = None,
        session_factory: Optional[sessionmaker[Session]] = None,
        ttl_sec: Optional[int] = None,
        fallback_token: Optional[str] = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.merchant_id = merchant_id or settings.SALLA_MERCHANT_ID
        self.ttl_sec = ttl_sec or settings.SALLA_TOKEN_TTL_SEC
        if fallback_token is None and settings.SALLA_ACCESS_TOKEN is not None:
            fallback_token = settings.SALLA_ACCESS_TOKEN.get_secret_value()
        self.fallback_token = fallback_token
        self._session_factory = session_factory
        self._clock = clock
        self._cached: Optional[_CachedToken] = None


    def get_token(self) -> Optional[str]:
        now = self._clock()
        if self._cached is not None and now < self._cached.expires_at:
            return self._cached.value

        value, expires_at = self._load()
        if not value:
            self._cached = None
            return None

        cache_until = now + timedelta(seconds=self.ttl_sec)
        if expires_at is not None:
            expires_at = as_aware_utc(expires_at)
            if expires_at <= now:
                # 外部刷新任务还没跟上；照样返回，让远端用 401 告诉我们
                logger.warning("salla.token.expired merchant_id=%s expires_at=%s", self.merchant_id, expires_at.isoformat())
            cache_until = min(cache_until, expires_at)
        self._cached = _CachedToken(value=value, expires_at=cache_until)
        return value


    def invalidate(self) -> None:
        self._cached = None


    def _load(self) -> tuple[Optional[str], Optional[datetime]]:
        factory = self._session_factory
        if factory is None:
            from app.db.session import SessionLocal
            factory = SessionLocal

        with factory() as db:
            row = salla_auth_repo.get_by_merchant(db, self.merchant_id)
        if row is not None and row.access_token:
            return row.access_token, row.expires_at

        if self.fallback_token:
            logger.info("salla.token.fallback_static merchant_id=%s", self.merchant_id)
            return self.fallback_token, None

        logger.error("salla.token.missing merchant_id=%s", self.merchant_id)
        return None, None

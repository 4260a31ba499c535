"""
   Salla 集成层专用异常类型 + 调用结果。
   HTTP 客户端不向上抛异常，而是返回 RemoteResult(ok / error)，
   上层（分单引擎）按 error 类型决定“跳过”还是“中止”。
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class SallaError(Exception):
    """Base for all Salla errors."""

    retryable: bool = False

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SallaRetryableError(SallaError):
    """Network/timeout/429/5xx: worth retrying, or already retried to exhaustion."""

    retryable = True


class SallaFatalError(SallaError):
    """Non-retryable 4xx or a response we cannot use."""


class SallaAuthError(SallaFatalError):
    """No access token available, or 401 persists after one refresh."""


class SallaPayloadError(SallaFatalError):
    """Unexpected/invalid response payload shape or content."""


@dataclass(frozen=True)
class RemoteResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[SallaError] = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T, *, attempts: int = 1) -> "RemoteResult[T]":
        return cls(value=value, attempts=attempts)

    @classmethod
    def failure(cls, error: SallaError, *, attempts: int = 1) -> "RemoteResult[T]":
        return cls(error=error, attempts=attempts)

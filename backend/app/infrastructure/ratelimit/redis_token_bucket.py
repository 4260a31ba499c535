# app/infrastructure/ratelimit/redis_token_bucket.py
from __future__ import annotations
import logging
from typing import Optional, Tuple

import redis

logger = logging.getLogger(__name__)


"""
全局令牌桶限流（多进程/多机共享），单位：rpm。
    多台 API 实例同时跑分单时，共享同一个 Salla 商户的调用额度。
    key: {prefix}:{env}:{vendor}:{account}:v1

    acquire_once() 原子步骤（Lua）：
      1) 用 Redis 服务器时间（TIME）补桶，避免多主机时钟偏差
      2) 有令牌则消耗 1 个，否则返回需要等待的毫秒数
      3) 写回 tokens/ts，并设置 TTL（空闲自动清理）
"""
class RedisTokenBucketLimiter:

    LUA_SCRIPT = """
    local key = KEYS[1]
    local capacity = tonumber(ARGV[1])
    local per_ms = tonumber(ARGV[2])
    local ttl_ms = tonumber(ARGV[3])

    local t = redis.call('TIME')
    local now = tonumber(t[1]) * 1000 + math.floor(tonumber(t[2]) / 1000)

    local state = redis.call('HMGET', key, 'tokens', 'ts')
    local tokens = tonumber(state[1]) or capacity
    local last = tonumber(state[2]) or now
    local elapsed = math.max(0, now - last)
    tokens = math.min(capacity, tokens + elapsed * per_ms)

    local allowed = 0
    local wait_ms = 0
    if tokens >= 1 then
        tokens = tokens - 1
        allowed = 1
    else
        wait_ms = math.max(0, math.ceil((1 - tokens) / per_ms))
    end

    redis.call('HSET', key, 'tokens', tokens, 'ts', now)
    if ttl_ms > 0 then
        redis.call('PEXPIRE', key, ttl_ms)
    end
    return {allowed, tostring(tokens), wait_ms}
    """


    def __init__(self, client, key: str, max_rpm: int, burst: int = 10,
                 ttl_ms: int = 120000, max_wait_ms: Optional[int] = 5000):
        self.r = client
        self.key = key
        self.capacity = max(1, int(burst))
        self.per_ms = float(max_rpm) / 60_000.0
        self.ttl_ms = int(ttl_ms)
        self.max_wait_ms = max_wait_ms
        self._sha = self.r.script_load(self.LUA_SCRIPT)


    @classmethod
    def from_settings(cls, *, vendor: str, account: Optional[str]) -> Optional["RedisTokenBucketLimiter"]:
        """
        从 settings 读开关/Redis URL/速率/桶容量/前缀/环境，构造 limiter。
        Redis 连不上时返回 None，调用方退回进程内节流。
        """
        from app.core.config import settings

        if not settings.SALLA_GLOBAL_RL_ENABLED:
            return None

        url = settings.SALLA_GLOBAL_RATE_LIMIT_REDIS_URL
        if not url:
            logger.warning("ratelimit.global_disabled reason=no_url vendor=%s", vendor)
            return None

        acct = (account or "default").replace("@", "_at_")
        key = f"{settings.SALLA_GLOBAL_RL_KEY_PREFIX}:{settings.SALLA_ENV}:{vendor}:{acct}:v1"
        try:
            client = redis.Redis.from_url(url, decode_responses=True, socket_connect_timeout=2, socket_timeout=2)
            return cls(
                client=client,
                key=key,
                max_rpm=settings.SALLA_GLOBAL_RL_MAX_RPM,
                burst=settings.SALLA_GLOBAL_RL_BURST,
            )
        except redis.RedisError as e:
            logger.warning("ratelimit.global_disabled reason=redis_error vendor=%s err=%s", vendor, e)
            return None


    def _eval(self) -> Tuple[bool, int]:
        try:
            res = self.r.evalsha(self._sha, 1, self.key, self.capacity, self.per_ms, self.ttl_ms)
        except redis.exceptions.NoScriptError:
            # Redis 重启后脚本缓存丢失，重载一次
            self._sha = self.r.script_load(self.LUA_SCRIPT)
            res = self.r.evalsha(self._sha, 1, self.key, self.capacity, self.per_ms, self.ttl_ms)

        allowed = int(res[0]) == 1
        wait_ms = 0 if allowed else max(0, int(float(res[2])))
        if self.max_wait_ms is not None and wait_ms > self.max_wait_ms:
            wait_ms = self.max_wait_ms
        return allowed, wait_ms


    def acquire_once(self) -> Tuple[bool, int]:
        """
        尝试消费 1 个令牌；返回 (allowed, wait_ms)。
        - allowed=True：允许立即发请求
        - allowed=False：建议等待 wait_ms 毫秒后再试
        """
        return self._eval()

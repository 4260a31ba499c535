# 环境变量和配置
# pydantic‑settings 读取 .env = core/config.py

from typing import List, Optional
from pydantic import SecretStr, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# 本机直接跑 uvicorn 时（不走 Docker），才会用到 model_config.env_file=".env"：
# 此时它会读取 backend/.env

class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",
        case_sensitive=False,
    )

    # ========= project config =========
    PROJECT_NAME: str = "Fulfillment Assignment Service"
    ENVIRONMENT: str = "dev"
    API_PREFIX: str = "/api/v1"


    # ========= 登录 / 鉴权 / CORS =========
    SECRET_KEY: str = Field("CHANGE_ME", alias="SECRET_KEY")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(720, alias="ACCESS_TOKEN_EXPIRE_MINUTES")   # 一个班次 12h
    COOKIE_NAME: str = Field("access_token", alias="COOKIE_NAME")
    COOKIE_DOMAIN: Optional[str] = Field(None, alias="COOKIE_DOMAIN")
    COOKIE_SAMESITE: str = Field("Strict", alias="COOKIE_SAMESITE")
    BACKEND_CORS_ORIGINS: str = "http://localhost:5173"


    # ========= Database =========
    # - 容器内默认连 docker 网络里的 "db" 服务
    # - 本机工具（psql/脚本）可使用 DATABASE_URL_LOCAL（指向 localhost）
    DATABASE_URL: str = Field(
        default="postgresql+psycopg://fs_user:fs_pass@db:5432/fulfillment_dev",
        alias="DATABASE_URL"
    )
    DATABASE_URL_LOCAL: Optional[str] = Field(
        default=None,
        alias="DATABASE_URL_LOCAL",
        description="Optional local URL for tools (e.g., psql/scripts). Typically '...@localhost:5432/fulfillment_dev'"
    )


    # ========= Salla Base Config =========
    SALLA_BASE_URL: str = Field("https://api.salla.dev/admin/v2", alias="SALLA_BASE_URL")
    SALLA_MERCHANT_ID: str = Field("1696031053", alias="SALLA_MERCHANT_ID")
    # 预置 token（测试/临时）；正常情况由外部刷新任务写入 salla_auth 表
    SALLA_ACCESS_TOKEN: Optional[SecretStr] = Field(None, alias="SALLA_ACCESS_TOKEN")
    SALLA_CONNECT_TIMEOUT: int = Field(10, ge=1, alias="SALLA_CONNECT_TIMEOUT")
    SALLA_READ_TIMEOUT: int = Field(30, ge=1, alias="SALLA_READ_TIMEOUT")
    SALLA_TOKEN_TTL_SEC: int = Field(5 * 60, ge=30, alias="SALLA_TOKEN_TTL_SEC")              # 表里没有 expires_at 时的兜底缓存时长
    SALLA_STATUS_CACHE_TTL_SEC: int = Field(10 * 60, ge=0, alias="SALLA_STATUS_CACHE_TTL_SEC")

    # 网络/HTTP 层重试：attempt 从 0 开始，等待 backoff_ms * 2**attempt
    SALLA_HTTP_RETRIES: int = Field(3, ge=1, alias="SALLA_HTTP_RETRIES")
    SALLA_HTTP_BACKOFF_MS: int = Field(300, ge=0, alias="SALLA_HTTP_BACKOFF_MS")

    # 订单状态（/orders/statuses 拉取失败时的兜底）
    SALLA_NEW_ORDER_FILTERS: str = Field("under_review,449146439", alias="SALLA_NEW_ORDER_FILTERS")
    SALLA_PREPARING_STATUS_SLUG: str = Field("in_progress", alias="SALLA_PREPARING_STATUS_SLUG")
    SALLA_PREPARING_STATUS_ID: int = Field(1939592358, alias="SALLA_PREPARING_STATUS_ID")


    # ========= Salla 全局限流配置 =========
    SALLA_RATE_LIMIT_PER_MIN: int = Field(120, ge=1, le=600, alias="SALLA_RATE_LIMIT_PER_MIN")   # 进程内兜底节流
    SALLA_GLOBAL_RL_ENABLED: bool = True
    SALLA_GLOBAL_RATE_LIMIT_REDIS_URL: str = "redis://redis:6379/0"
    SALLA_GLOBAL_RL_MAX_RPM: int = 120     # 每分钟最大速率（rate）
    SALLA_GLOBAL_RL_BURST: int = 10        # 桶容量
    SALLA_GLOBAL_RL_KEY_PREFIX: str = "salla:rl"
    SALLA_ENV: str = "dev"  # 用于区分不同环境拼 key


    # ========= 自动分单 =========
    ASSIGN_SLOTS_PER_USER: int = Field(1, ge=1, le=1, alias="ASSIGN_SLOTS_PER_USER")   # 一人一单，防止重叠
    ASSIGN_FETCH_BUFFER: int = Field(10, ge=1, alias="ASSIGN_FETCH_BUFFER")
    ASSIGN_MAX_FETCH_LIMIT: int = Field(50, ge=1, alias="ASSIGN_MAX_FETCH_LIMIT")


    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.BACKEND_CORS_ORIGINS.split(",") if o.strip()]

    @property
    def new_order_filters(self) -> List[str]:
        return [v.strip() for v in self.SALLA_NEW_ORDER_FILTERS.split(",") if v.strip()]

    @property
    def assign_fetch_limit(self) -> int:
        # min(上限, max(slots * buffer, 10))
        return min(self.ASSIGN_MAX_FETCH_LIMIT, max(self.ASSIGN_SLOTS_PER_USER * self.ASSIGN_FETCH_BUFFER, 10))


settings = Settings()  # 只从环境读取（含 .env）

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.core.config import settings
from app.core.logging import configure_logging
from app.api.v1 import api_v1
from app.db.session import dispose_engine

logger = configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("app.startup env=%s prefix=%s", settings.ENVIRONMENT, settings.API_PREFIX)
    yield
    dispose_engine()
    logger.info("app.shutdown")


app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# 从环境读取前端白名单（逗号分隔）。本地可配：
# BACKEND_CORS_ORIGINS=http://localhost:5173,https://app.local.test:5173
origins = settings.cors_origins


app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,     # 明确白名单（本地 http://localhost:5173，线上是前端域名）
    allow_credentials=True,    # Access-Control-Allow-Credentials: true
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    )


# Origin 校验（仅对改数据方法）；没有 Origin（curl / 健康检查 / 测试）放行
TRUSTED = set(origins)

@app.middleware("http")
async def origin_check(request: Request, call_next):
    if request.method in {"POST", "PUT", "PATCH", "DELETE"}:
        origin = request.headers.get("origin")
        if origin and origin not in TRUSTED:
            return JSONResponse(status_code=403, content={"detail": "Bad Origin"})
    return await call_next(request)


app.include_router(api_v1, prefix=settings.API_PREFIX)

# 根路径健康探活（方便测试或 Docker 健康检查）
@app.get("/")
def root():
    return {
        "app": settings.PROJECT_NAME,
        "env": settings.ENVIRONMENT,
        "ok": True
    }

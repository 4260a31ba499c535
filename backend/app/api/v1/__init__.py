from fastapi import APIRouter, Depends
from app.services.auth_service import get_current_user


# 非受保护路由
from .routes_health import router as health_router
from .auth import router as auth_router


# 需要登录的受保护路由
from .order_assignments import router as order_assignments_router
from .priority_orders import router as priority_orders_router


api_v1 = APIRouter()
api_v1.include_router(health_router)      # /health 不需要登录
api_v1.include_router(auth_router)        # /auth 登录相关

# --- 需要登录的接口 ---
protected = APIRouter(dependencies=[Depends(get_current_user)])

protected.include_router(order_assignments_router)
protected.include_router(priority_orders_router)   # 另外要求运营权限

# 把受保护路由注册进主路由
api_v1.include_router(protected)


from fastapi import Depends, HTTPException, status, Request, Response
from sqlalchemy.orm import Session
from app.db.session import get_db
from app.core.security import verify_password, create_access_token, decode_token, user_id_from_claims
from app.core.config import settings
from app.db.model.user import User
from app.repository.user_repo import get_by_username


COOKIE_NAME = settings.COOKIE_NAME

# 统一 Cookie 策略：
# - 线上：Secure=True，SameSite 默认 Strict（.env 可改 Lax）
# - 本地 http 开发 / 测试：Secure=False，否则 TestClient 和浏览器都不会回传 Cookie
COOKIE_SECURE_DEFAULT = settings.ENVIRONMENT not in ("local", "dev", "test")
COOKIE_DOMAIN = settings.COOKIE_DOMAIN or None
COOKIE_SAMESITE = settings.COOKIE_SAMESITE


'''
只有一枚 HttpOnly Cookie，max_age 与 JWT 过期时间一致（默认 12h = 一个班次）
'''
def set_auth_cookie(resp: Response, token: str, max_age: int):
    resp.set_cookie(
        key=COOKIE_NAME,
        value=token,
        max_age=max_age,
        httponly=True,
        secure=COOKIE_SECURE_DEFAULT,
        samesite=COOKIE_SAMESITE,
        domain=COOKIE_DOMAIN,
        path="/",
    )


def clear_cookie(response: Response):
    response.delete_cookie(key=COOKIE_NAME, domain=COOKIE_DOMAIN, path="/")


def authenticate_user(db: Session, username: str, password: str) -> User | None:
    user = get_by_username(db, username)
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


def login_user(response: Response, db: Session, username: str, password: str) -> User:
    """校验账号密码，签发 JWT 写入 Cookie，返回用户。"""
    user = authenticate_user(db, username, password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    expires_minutes = int(settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    token = create_access_token(
        user.id, user.username,
        is_operator=user.is_operator,
        expires_minutes=expires_minutes,
    )
    set_auth_cookie(response, token, expires_minutes * 60)
    return user


'''
获取当前登录用户
    - Cookie → decode_token → sub(user_id) → users 表
    - 账号被停用后旧 Cookie 立即失效
'''
def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    raw = request.cookies.get(COOKIE_NAME)
    if not raw:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    claims = decode_token(raw)
    user_id = user_id_from_claims(claims) if claims else None
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User disabled")
    return user


def require_operator(current: User = Depends(get_current_user)) -> User:
    """运营权限（is_superuser）：加急名单、移除分单。"""
    if not current.is_operator:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Operator only")
    return current

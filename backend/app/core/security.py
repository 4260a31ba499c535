from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import jwt, JWTError
from passlib.context import CryptContext
from app.core.config import settings


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
ALGORITHM = "HS256"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


'''
生成 JWT（塞进 HttpOnly Cookie）
  - sub = 用户 id；role 只用于前端展示，服务端每次仍以 users 表为准
  - 无服务端会话，登出 = 删除 Cookie
'''
def create_access_token(user_id: int, username: str, *, is_operator: bool = False,
                        expires_minutes: int | None = None) -> str:
    now = datetime.now(tz=timezone.utc)
    expire = now + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {
        "sub": str(user_id),
        "username": username,
        "role": "operator" if is_operator else "worker",
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict[str, Any]]:
    """校验签名与过期；失败返回 None。"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def user_id_from_claims(claims: dict[str, Any]) -> Optional[int]:
    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        return None

# 登录 / 登出 / 当前用户（备货 App 启动时用 /me 判断手上是否还有单）
from typing import Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.api.v1.camel import CamelModel
from app.db.model.user import User
from app.db.session import get_db
from app.repository import assignment_repo
from app.services.auth_service import clear_cookie, get_current_user, login_user


router = APIRouter(prefix="/auth", tags=["auth"])


class LoginInput(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1)


class SessionUser(CamelModel):
    id: int
    username: str
    full_name: Optional[str] = None
    role: str
    active_assignments: Optional[int] = None


def _session_user(user: User, active: Optional[int] = None) -> SessionUser:
    return SessionUser(
        id=user.id,
        username=user.username,
        full_name=user.full_name,
        role="operator" if user.is_operator else "worker",
        active_assignments=active,
    )


@router.post("/login", response_model=SessionUser)
def login(data: LoginInput, response: Response, db: Session = Depends(get_db)):
    user = login_user(response, db, data.username.strip(), data.password)
    return _session_user(user)


@router.post("/logout")
def logout(response: Response):
    clear_cookie(response)
    return {"ok": True}


@router.get("/me", response_model=SessionUser)
def me(current: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return _session_user(current, assignment_repo.count_active_for_user(db, current.id))

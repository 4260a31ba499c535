# 脚本 / 运维入口：拿会话、在空库上建表
from typing import Optional

from sqlalchemy.engine import Engine

from .base import Base
from .session import SessionLocal, dispose_engine, engine, get_db, session_scope
from . import model  # noqa: F401  注册所有模型到 Base.metadata


def create_all(bind: Optional[Engine] = None) -> None:
    """
    只用于本地空库 / 一次性环境；正式库走迁移（Postgres 和 SQLite 都能跑）：
        cd backend && alembic upgrade head
    """
    Base.metadata.create_all(bind=bind or engine)


__all__ = ["Base", "SessionLocal", "engine", "get_db", "session_scope", "dispose_engine", "create_all"]

# Engine/Session 工厂 + FastAPI 依赖

from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Dict, Generator, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from app.core.config import settings


def build_engine(url: str, **overrides: Any) -> Engine:
    """
    Postgres 走连接池参数；SQLite（本地/测试）不支持 pool_size，需要 check_same_thread=False
    才能在 FastAPI 线程池 / 并发测试里共用。
    """
    kwargs: Dict[str, Any] = {"echo": False, "future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs.update(
            pool_size=10,            # 常驻连接
            max_overflow=20,         # 高峰期额外连接
            pool_pre_ping=True,      # 连接失效探测，避免 "server closed the connection"
            pool_recycle=1800,       # 秒；半小时回收一次
        )
    kwargs.update(overrides)
    return create_engine(url, **kwargs)


def build_session_factory(bind: Engine) -> sessionmaker[Session]:
    # autocommit=False, autoflush=False 更易控事务与 flush 时机；
    # 抢单依赖每次 insert 单独 commit，冲突时只回滚这一次
    return sessionmaker(
        bind=bind,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,  # 提交后对象仍可用（减少再次查询）
        class_=Session,
        future=True,
    )


# ---- Engine / Session Factory ----
engine = build_engine(settings.DATABASE_URL)
SessionLocal: sessionmaker[Session] = build_session_factory(engine)


'''
FastAPI 依赖：为每个请求提供独立会话
用法：
from app.db.session import get_db
def endpoint(db: Session = Depends(get_db)): ...
'''
def get_db() -> Generator[Session, None, None]:
    db: Session = SessionLocal()
    try:
        yield db    # repo 里明确 db.commit()/rollback()；此处不做隐式提交
    finally:
        db.close()  # 归还连接到连接池


# ---- 脚本里的简便上下文管理器（非 FastAPI 场景）----
@contextmanager
def session_scope() -> Iterator[Session]:
    db: Session = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def dispose_engine() -> None:
    """释放连接池中的所有连接；在 FastAPI 的 shutdown 钩子中调用。"""
    engine.dispose()

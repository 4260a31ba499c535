# 统一的 ORM 基类 + 命名规范

from __future__ import annotations
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.schema import MetaData

#  约束/索引名字稳定可预期：Alembic 迁移和 IntegrityError 识别（见 assignment_repo）都依赖它
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


# 所有表模型（User, OrderAssignment, HighPriorityOrder …）都继承这个 Base，
# 才能被 ORM 识别、映射到数据库表。
class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)

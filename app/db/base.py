"""
SQLAlchemy ORM 基类定义

所有数据库模型都继承自 Base。SQLAlchemy 通过 Base.metadata 收集
表结构，用于 init_models() 建表和 Alembic 生成迁移脚本。

使用示例：
    from app.db.base import Base

    class Agent(Base):
        __tablename__ = "agents"
        id: Mapped[int] = mapped_column(primary_key=True)
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """声明式基类，所有模型自动注册到 Base.metadata"""
    pass

"""
模型混入类 (Mixins)

提供可复用的模型字段和行为，通过多重继承添加到具体模型中。

使用示例：
    class MyModel(TimestampMixin, Base):
        __tablename__ = "my_table"
        id: Mapped[BIGINT_PK]
        # 自动获得 created_at 和 updated_at 字段
"""

from datetime import datetime, timezone
from typing import Annotated

from sqlalchemy import BigInteger, DateTime, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

# ==================== 类型别名 ====================
# 自增整型主键；SQLite 只对 INTEGER PRIMARY KEY 自增，因此做方言变体
BIGINT_PK = Annotated[
    int,
    mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    ),
]


class TimestampMixin:
    """
    时间戳混入类

    字段说明：
    - created_at: 记录创建时间，由数据库自动设置
    - updated_at: 记录最后更新时间，每次 UPDATE 时自动更新
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


def elapsed_seconds(since: datetime | None) -> int:
    """
    计算从 since 到现在经过的秒数

    SQLite 的 CURRENT_TIMESTAMP 返回不带时区的 UTC 时间，这里统一按 UTC 处理。
    """
    if since is None:
        return 0
    if since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    return max(0, int((datetime.now(timezone.utc) - since).total_seconds()))

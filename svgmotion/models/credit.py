"""
积分交易模型
"""
import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import String, Integer, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from svgmotion.database import Base


class TransactionType(str, Enum):
    """交易类型"""
    GIFT = "gift"          # 注册赠送
    RECHARGE = "recharge"  # 充值
    USE = "use"            # 生成消费


class CreditTransaction(Base):
    """积分交易记录表（只追加，不修改）"""
    __tablename__ = "credit_transactions"
    __table_args__ = (UniqueConstraint("user_id", "seq", name="uq_credit_transactions_user_seq"),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), index=True
    )
    type: Mapped[str] = mapped_column(String(20))
    amount: Mapped[int] = mapped_column(Integer)  # 正数增加，负数减少
    balance_after: Mapped[int] = mapped_column(Integer)  # 交易后余额
    seq: Mapped[int] = mapped_column(Integer)  # 用户内单调递增的账本序号
    note: Mapped[str] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )

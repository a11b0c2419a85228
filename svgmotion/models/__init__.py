"""
数据库模型
"""
from svgmotion.models.user import User
from svgmotion.models.credit import CreditTransaction, TransactionType

__all__ = [
    "User",
    "CreditTransaction",
    "TransactionType",
]

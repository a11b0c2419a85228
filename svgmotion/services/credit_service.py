"""
积分服务 - 统一管理用户余额与积分账本

此服务提供：
1. 原子性的余额调整（单行条件更新 + 账本追加，同一事务提交）
2. 余额查询与分页交易记录
余额与账本的所有写入都必须经过 adjust()。
"""
import logging
from typing import Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from svgmotion.exceptions import (
    InsufficientCreditsError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from svgmotion.models.credit import CreditTransaction, TransactionType
from svgmotion.repositories.transactions import TransactionRepository
from svgmotion.repositories.users import UserRepository
from svgmotion.utils.metrics import CREDIT_ADJUSTMENTS

logger = logging.getLogger(__name__)


class CreditService:
    """
    积分服务类

    使用方式:
        service = CreditService(db)
        balance = await service.adjust(user_id, -1, TransactionType.USE, "生成SVG动画: ...",
                                       require_sufficient=True)
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.users = UserRepository(db)
        self.transactions = TransactionRepository(db)

    async def adjust(
        self,
        user_id: str,
        delta: int,
        type: TransactionType,
        note: str,
        require_sufficient: bool = False,
    ) -> int:
        """
        调整用户余额并追加一条账本记录（原子操作）

        Args:
            user_id: 用户 ID
            delta: 变动数量，正数增加，负数扣除
            type: 交易类型
            note: 交易备注
            require_sufficient: 为 True 时余额不足则拒绝（不会写入负余额）

        Returns:
            调整后的余额

        Raises:
            ValidationError: delta 为 0
            NotFoundError: 用户不存在
            InsufficientCreditsError: 余额不足
            StorageError: 数据库写入失败
        """
        if delta == 0:
            raise ValidationError("积分变动数量不能为 0")

        type_value = TransactionType(type).value
        try:
            adjusted = await self.transactions.adjust_balance(
                user_id, delta, require_sufficient=require_sufficient
            )
            if adjusted is None:
                current_balance = await self.users.get_balance(user_id)
                await self.db.rollback()
                if current_balance is None:
                    raise NotFoundError("用户不存在")
                raise InsufficientCreditsError(
                    f"积分不足，需要 {-delta} 积分，当前余额 {current_balance}"
                )

            balance_after, seq = adjusted
            self.transactions.append(user_id, delta, type_value, note, balance_after, seq)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("Credit adjustment failed for user %s: %s", user_id, exc, exc_info=True)
            raise StorageError() from exc

        CREDIT_ADJUSTMENTS.labels(type_value).inc()
        logger.info(
            "Credit adjusted: user=%s type=%s delta=%d balance=%d",
            user_id, type_value, delta, balance_after,
        )
        return balance_after

    async def get_balance(self, user_id: str) -> int:
        """获取当前余额"""
        try:
            balance = await self.users.get_balance(user_id)
        except SQLAlchemyError as exc:
            raise StorageError() from exc
        if balance is None:
            raise NotFoundError("用户不存在")
        return balance

    async def history(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[Sequence[CreditTransaction], int]:
        """获取积分交易记录（按时间倒序分页）"""
        try:
            total = await self.transactions.count_for_user(user_id)
            rows = await self.transactions.list_for_user(
                user_id,
                offset=(page - 1) * page_size,
                limit=page_size,
            )
        except SQLAlchemyError as exc:
            raise StorageError() from exc
        return rows, total

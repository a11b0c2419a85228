"""
积分账本仓储

余额更新与账本追加都在这里完成，调用方（CreditService）负责提交事务。
"""
from typing import Optional, Sequence, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from svgmotion.models.credit import CreditTransaction
from svgmotion.models.user import User


class TransactionRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def adjust_balance(
        self,
        user_id: str,
        delta: int,
        require_sufficient: bool = False,
    ) -> Optional[Tuple[int, int]]:
        """
        单行条件更新余额，同时递增用户的账本序号

        Returns:
            (更新后的余额, 新账本序号)；用户不存在或（require_sufficient 时）余额不足返回 None
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                credit_balance=User.credit_balance + delta,
                ledger_seq=User.ledger_seq + 1,
            )
            .returning(User.credit_balance, User.ledger_seq)
        )
        if require_sufficient:
            stmt = stmt.where(User.credit_balance + delta >= 0)
        row = (await self.db.execute(stmt)).one_or_none()
        if row is None:
            return None
        return row[0], row[1]

    def append(
        self,
        user_id: str,
        delta: int,
        type: str,
        note: str,
        balance_after: int,
        seq: int,
    ) -> CreditTransaction:
        entry = CreditTransaction(
            user_id=user_id,
            amount=delta,
            type=type,
            note=note,
            balance_after=balance_after,
            seq=seq,
        )
        self.db.add(entry)
        return entry

    async def list_for_user(
        self,
        user_id: str,
        offset: int = 0,
        limit: Optional[int] = None,
        newest_first: bool = True,
    ) -> Sequence[CreditTransaction]:
        # 时间戳可能重复，以序号为准
        order = CreditTransaction.seq.desc() if newest_first else CreditTransaction.seq.asc()
        query = (
            select(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .order_by(order)
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return result.scalars().all()

    async def count_for_user(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(CreditTransaction.id)).where(
                CreditTransaction.user_id == user_id
            )
        )
        return result.scalar() or 0

import asyncio
from datetime import datetime

import pytest
from sqlalchemy import inspect, update

from svgmotion.exceptions import InsufficientCreditsError, NotFoundError, ValidationError
from svgmotion.models.credit import CreditTransaction, TransactionType
from svgmotion.models.user import User
from svgmotion.services.credit_service import CreditService


async def _create_user(app, email: str = "ledger@example.com") -> str:
    async with app.state.database.session() as session:
        user = User(email=email, password_hash="x", name="ledger", credit_balance=0)
        session.add(user)
        await session.commit()
        return user.id


async def _adjust(app, user_id: str, delta: int, type: TransactionType, require_sufficient: bool = False) -> int:
    async with app.state.database.session() as session:
        return await CreditService(session).adjust(
            user_id, delta, type, f"adjust {delta}", require_sufficient=require_sufficient
        )


@pytest.mark.anyio
async def test_sequential_adjustments_keep_running_sum(app, ledger, balance_of):
    user_id = await _create_user(app)

    deltas = [
        (10, TransactionType.GIFT),
        (-1, TransactionType.USE),
        (50, TransactionType.RECHARGE),
        (-3, TransactionType.USE),
    ]
    balances = []
    for delta, tx_type in deltas:
        balances.append(await _adjust(app, user_id, delta, tx_type, require_sufficient=delta < 0))

    assert balances == [10, 9, 59, 56]
    assert await balance_of(user_id) == 56

    rows = await ledger(user_id)
    assert [row.amount for row in rows] == [10, -1, 50, -3]
    assert [row.type for row in rows] == ["gift", "use", "recharge", "use"]
    running = 0
    for row in rows:
        running += row.amount
        assert row.balance_after == running


@pytest.mark.anyio
async def test_concurrent_debits_never_overdraw(app, ledger, balance_of):
    user_id = await _create_user(app)
    await _adjust(app, user_id, 5, TransactionType.GIFT)

    results = await asyncio.gather(
        *[_adjust(app, user_id, -1, TransactionType.USE, require_sufficient=True) for _ in range(8)],
        return_exceptions=True,
    )

    succeeded = [r for r in results if isinstance(r, int)]
    rejected = [r for r in results if isinstance(r, InsufficientCreditsError)]
    assert len(succeeded) == 5
    assert len(rejected) == 3
    assert sorted(succeeded) == [0, 1, 2, 3, 4]

    assert await balance_of(user_id) == 0
    use_rows = [row for row in await ledger(user_id) if row.type == "use"]
    assert len(use_rows) == 5
    assert sorted(row.balance_after for row in use_rows) == [0, 1, 2, 3, 4]


@pytest.mark.anyio
async def test_insufficient_debit_leaves_no_trace(app, ledger, balance_of):
    user_id = await _create_user(app)
    await _adjust(app, user_id, 1, TransactionType.GIFT)

    with pytest.raises(InsufficientCreditsError):
        await _adjust(app, user_id, -2, TransactionType.USE, require_sufficient=True)

    assert await balance_of(user_id) == 1
    assert len(await ledger(user_id)) == 1


@pytest.mark.anyio
async def test_adjust_unknown_user_raises_not_found(app):
    with pytest.raises(NotFoundError):
        await _adjust(app, "missing-user", 5, TransactionType.RECHARGE)


@pytest.mark.anyio
async def test_zero_delta_is_rejected(app):
    user_id = await _create_user(app)
    with pytest.raises(ValidationError):
        await _adjust(app, user_id, 0, TransactionType.GIFT)


@pytest.mark.anyio
async def test_history_is_paginated_newest_first(app):
    user_id = await _create_user(app)
    for delta in (1, 2, 3):
        await _adjust(app, user_id, delta, TransactionType.RECHARGE)

    async with app.state.database.session() as session:
        service = CreditService(session)
        rows, total = await service.history(user_id, page=1, page_size=2)
        second_page, _ = await service.history(user_id, page=2, page_size=2)

    assert total == 3
    assert [row.amount for row in rows] == [3, 2]
    assert [row.amount for row in second_page] == [1]


@pytest.mark.anyio
async def test_get_balance_for_missing_user(app):
    async with app.state.database.session() as session:
        with pytest.raises(NotFoundError):
            await CreditService(session).get_balance("missing-user")


@pytest.mark.anyio
async def test_ledger_order_survives_identical_timestamps(app):
    user_id = await _create_user(app)
    for delta, tx_type in ((10, TransactionType.GIFT), (-4, TransactionType.USE), (7, TransactionType.RECHARGE)):
        await _adjust(app, user_id, delta, tx_type, require_sufficient=delta < 0)

    async with app.state.database.session() as session:
        await session.execute(
            update(CreditTransaction)
            .where(CreditTransaction.user_id == user_id)
            .values(created_at=datetime(2025, 1, 1, 12, 0, 0))
        )
        await session.commit()

    async with app.state.database.session() as session:
        service = CreditService(session)
        oldest_first = await service.transactions.list_for_user(user_id, newest_first=False)
        newest_first, _ = await service.history(user_id)

    assert [row.seq for row in oldest_first] == [1, 2, 3]
    assert [row.amount for row in newest_first] == [7, -4, 10]
    running = 0
    for row in oldest_first:
        running += row.amount
        assert row.balance_after == running


def test_ledger_models_have_no_lazy_relationships():
    # 账本只通过仓储查询读取
    assert not inspect(User).relationships
    assert not inspect(CreditTransaction).relationships

"""
积分路由
"""
from fastapi import APIRouter, Depends, Query

from svgmotion.dependencies import get_credit_service
from svgmotion.schemas.credit import CreditBalance, CreditHistoryResponse, CreditTransactionResponse
from svgmotion.services.credit_service import CreditService
from svgmotion.utils.security import get_current_user_id

router = APIRouter()


@router.get("/balance", response_model=CreditBalance)
async def get_balance(
    user_id: str = Depends(get_current_user_id),
    credit_service: CreditService = Depends(get_credit_service),
):
    """获取积分余额"""
    return CreditBalance(balance=await credit_service.get_balance(user_id))


@router.get("/history", response_model=CreditHistoryResponse)
async def get_history(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    credit_service: CreditService = Depends(get_credit_service),
):
    """获取积分交易记录"""
    # 先确认用户存在，已删除用户返回 404
    await credit_service.get_balance(user_id)
    transactions, total = await credit_service.history(user_id, page, page_size)

    return CreditHistoryResponse(
        transactions=[CreditTransactionResponse.model_validate(t) for t in transactions],
        total=total,
        page=page,
        page_size=page_size,
    )

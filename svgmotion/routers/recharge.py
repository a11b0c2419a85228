"""
充值路由（模拟充值）
"""
from fastapi import APIRouter, Depends

from svgmotion.dependencies import get_recharge_service
from svgmotion.schemas.recharge import PackageListResponse, PackageResponse, RechargeRequest, RechargeResponse
from svgmotion.services.recharge_service import RechargeService, list_packages
from svgmotion.utils.security import get_current_user_id

router = APIRouter()


@router.get("", response_model=PackageListResponse, response_model_exclude_none=True)
async def get_packages():
    """获取充值套餐"""
    return PackageListResponse(
        packages=[PackageResponse(**p.to_dict()) for p in list_packages()]
    )


@router.post("", response_model=RechargeResponse)
async def recharge(
    data: RechargeRequest,
    user_id: str = Depends(get_current_user_id),
    recharge_service: RechargeService = Depends(get_recharge_service),
):
    """兑换套餐，模拟支付成功后直接到账"""
    balance, added = await recharge_service.redeem(user_id, data.package_id)
    return RechargeResponse(credits=balance, added=added)

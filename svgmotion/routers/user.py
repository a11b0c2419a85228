"""
用户路由
"""
from fastapi import APIRouter, Depends

from svgmotion.dependencies import get_auth_service
from svgmotion.schemas.user import CurrentUserResponse, UserResponse
from svgmotion.services.auth_service import AuthService
from svgmotion.utils.security import get_current_user_id

router = APIRouter()


@router.get("", response_model=CurrentUserResponse)
async def get_current_user(
    user_id: str = Depends(get_current_user_id),
    auth_service: AuthService = Depends(get_auth_service),
):
    """获取当前用户信息"""
    user = await auth_service.get_user(user_id)
    return CurrentUserResponse(user=UserResponse.model_validate(user))

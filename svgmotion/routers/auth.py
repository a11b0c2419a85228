"""
认证路由：注册、登录
"""
from fastapi import APIRouter, Depends, status

from svgmotion.dependencies import get_auth_service
from svgmotion.schemas.user import LoginResponse, RegisterResponse, UserLogin, UserRegister, UserResponse
from svgmotion.services.auth_service import AuthService

router = APIRouter()


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: UserRegister,
    auth_service: AuthService = Depends(get_auth_service),
):
    """用户注册（赠送初始积分）"""
    user = await auth_service.register(data.email, data.password, data.name)
    return RegisterResponse(user=UserResponse.model_validate(user))


@router.post("/login", response_model=LoginResponse)
async def login(
    data: UserLogin,
    auth_service: AuthService = Depends(get_auth_service),
):
    """用户登录"""
    user, token = await auth_service.login(data.email, data.password)
    return LoginResponse(user=UserResponse.model_validate(user), token=token)

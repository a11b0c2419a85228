"""
FastAPI 依赖：从 app.state 取出进程级资源，按请求组装服务
"""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from svgmotion.config import Settings
from svgmotion.database import get_db
from svgmotion.services.auth_service import AuthService
from svgmotion.services.credit_service import CreditService
from svgmotion.services.generation_service import GenerationService
from svgmotion.services.recharge_service import RechargeService
from svgmotion.utils.rate_limiter import RateLimiter
from svgmotion.utils.security import TokenSigner, get_signer


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_credit_service(db: AsyncSession = Depends(get_db)) -> CreditService:
    return CreditService(db)


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    signer: TokenSigner = Depends(get_signer),
    credit_service: CreditService = Depends(get_credit_service),
    settings: Settings = Depends(get_app_settings),
) -> AuthService:
    return AuthService(
        db,
        signer,
        credit_service=credit_service,
        initial_gift_credits=settings.initial_gift_credits,
    )


def get_recharge_service(
    credit_service: CreditService = Depends(get_credit_service),
) -> RechargeService:
    return RechargeService(credit_service)


def get_generation_service(
    request: Request,
    db: AsyncSession = Depends(get_db),
    credit_service: CreditService = Depends(get_credit_service),
    settings: Settings = Depends(get_app_settings),
) -> GenerationService:
    rate_limiter = RateLimiter(
        request.app.state.redis,
        times=settings.anonymous_generate_limit,
        seconds=settings.anonymous_generate_window_seconds,
    )
    return GenerationService(
        db,
        settings,
        request.app.state.model_client,
        rate_limiter=rate_limiter,
        credit_service=credit_service,
    )

"""
FastAPI 主入口
"""
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import sentry_sdk
from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sentry_sdk.integrations.fastapi import FastApiIntegration
from starlette.exceptions import HTTPException as StarletteHTTPException

from svgmotion.config import Settings, get_settings
from svgmotion.database import Database, init_db
from svgmotion.exceptions import AppError
from svgmotion.routers import auth, credit, generate, recharge, user
from svgmotion.services.model_client import DeepSeekClient
from svgmotion.utils.metrics import IN_PROGRESS, REQUEST_COUNT, REQUEST_LATENCY, get_route_name
from svgmotion.utils.redis_client import create_redis_client
from svgmotion.utils.request_context import JsonFormatter, RequestIdFilter, request_id_ctx_var
from svgmotion.utils.security import TokenSigner

logger = logging.getLogger(__name__)

API_V1_PREFIX = "/api/v1"
LEGACY_PREFIX = "/api"


def error_body(error_code: str, message: str, status_code: int) -> dict:
    return {
        "status": "error",
        "error": error_code,
        "message": message,
        "code": status_code,
    }


async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.error_code, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.error_code, exc.message, exc.status_code),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body("HTTP_ERROR", str(exc.detail), exc.status_code),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            **error_body("VALIDATION_ERROR", "请求参数无效", status.HTTP_400_BAD_REQUEST),
            "details": jsonable_errors(exc),
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]


async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("INTERNAL_ERROR", "服务器繁忙，请稍后重试", 500),
    )


def configure_logging(settings: Settings) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestIdFilter())

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = [handler]
        uvicorn_logger.setLevel(settings.log_level)
        uvicorn_logger.propagate = False


def init_sentry(settings: Settings) -> None:
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment,
            integrations=[FastApiIntegration()],
            traces_sample_rate=settings.sentry_traces_sample_rate,
        )


def create_app(
    settings: Optional[Settings] = None,
    model_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    创建应用

    配置在这里解析一次，数据库、签名器、上游客户端、Redis 都挂到 app.state，
    路由通过依赖注入取用。model_transport 仅用于测试替换上游网络。
    """
    settings = settings or get_settings()
    configure_logging(settings)
    init_sentry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        settings.validate_secrets()
        await init_db(app.state.database)
        yield
        # 关闭时清理资源
        if app.state.redis is not None:
            await app.state.redis.aclose()
        await app.state.database.dispose()

    app = FastAPI(
        title="SVG Motion API",
        description="AI SVG 动画生成平台后端服务",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = Database(settings)
    app.state.signer = TokenSigner.from_settings(settings)
    app.state.model_client = DeepSeekClient.from_settings(settings, transport=model_transport)
    app.state.redis = create_redis_client(settings)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
        token = request_id_ctx_var.set(request_id)
        response = None
        start = time.perf_counter()
        if settings.metrics_enabled:
            IN_PROGRESS.inc()

        try:
            response = await call_next(request)
            return response
        finally:
            duration = time.perf_counter() - start
            path = get_route_name(request.scope)
            status_code = response.status_code if response else 500
            if settings.metrics_enabled:
                REQUEST_COUNT.labels(request.method, path, str(status_code)).inc()
                REQUEST_LATENCY.labels(request.method, path).observe(duration)
                IN_PROGRESS.dec()
            request_id_ctx_var.reset(token)
            if response is not None:
                response.headers["X-Request-ID"] = request_id

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    # V1 API 路由；旧的 /api/ 路径保留给现有前端
    for prefix, tag_suffix in ((API_V1_PREFIX, "V1-"), (LEGACY_PREFIX, "")):
        app.include_router(auth.router, prefix=f"{prefix}/auth", tags=[f"{tag_suffix}认证"])
        app.include_router(user.router, prefix=f"{prefix}/user", tags=[f"{tag_suffix}用户"])
        app.include_router(credit.router, prefix=f"{prefix}/credits", tags=[f"{tag_suffix}积分"])
        app.include_router(recharge.router, prefix=f"{prefix}/recharge", tags=[f"{tag_suffix}充值"])
        app.include_router(generate.router, prefix=f"{prefix}/generate", tags=[f"{tag_suffix}生成"])

    @app.get("/api/health")
    @app.get("/api/v1/health")
    async def health_check():
        """健康检查端点"""
        return {
            "status": "ok",
            "service": "svgmotion-backend",
            "version": "1.0.0",
            "database": "remote" if settings.uses_remote_database else "local",
        }

    @app.get("/metrics")
    async def metrics():
        """Prometheus 指标端点"""
        if not settings.metrics_enabled:
            raise HTTPException(status_code=404, detail="Metrics disabled")
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


app = create_app()

"""
SVG 动画生成路由 - 代理 DeepSeek 流式输出
"""
import json
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from svgmotion.dependencies import get_generation_service
from svgmotion.exceptions import ValidationError
from svgmotion.services.generation_service import GenerationService
from svgmotion.utils.rate_limiter import get_client_ip
from svgmotion.utils.security import get_optional_user_id

router = APIRouter()


@router.post("")
async def generate(
    request: Request,
    user_id: Optional[str] = Depends(get_optional_user_id),
    generation_service: GenerationService = Depends(get_generation_service),
):
    """
    生成 SVG 动画
    1. 校验提示词
    2. 已登录用户检查余额并扣除 1 积分（无效令牌按匿名处理，不扣费）
    3. 转发请求到 DeepSeek
    4. 以纯文本流逐段返回生成内容
    """
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ValidationError("请求体必须是 JSON")
    if not isinstance(body, dict):
        raise ValidationError("请求体必须是 JSON 对象")

    fragments = await generation_service.start(
        body.get("prompt"),
        user_id,
        client_id=get_client_ip(request),
    )
    return StreamingResponse(
        fragments,
        media_type="text/plain; charset=utf-8",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )

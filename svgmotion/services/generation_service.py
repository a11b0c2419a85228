"""
SVG 动画生成服务

请求处理顺序：
1. 校验提示词与上游配置（不动积分）
2. 可选认证：令牌有效则计费，否则按匿名请求处理
3. 余额检查并扣除积分（在上游调用之前提交，失败不退还）
4. 调用上游模型并逐段转发文本
"""
import logging
from typing import Any, AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from svgmotion.config import Settings
from svgmotion.exceptions import (
    AuthError,
    ConfigurationError,
    InsufficientCreditsError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from svgmotion.models.credit import TransactionType
from svgmotion.services.credit_service import CreditService
from svgmotion.services.model_client import CompletionStream, DeepSeekClient
from svgmotion.utils.metrics import GENERATION_REQUESTS
from svgmotion.utils.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

PROMPT_NOTE_LENGTH = 50

SYSTEM_PROMPT = """你是一个专业的 SVG 动画生成专家。根据用户描述生成 SVG 动画代码。

严格要求：
1. 只输出纯 SVG 代码，不要任何解释、markdown 标记或代码块符号
2. 直接以 <svg 开头，以 </svg> 结尾
3. 必须包含 xmlns="http://www.w3.org/2000/svg"
4. 必须设置 viewBox="0 0 400 300"
5. 必须包含动画元素（animate, animateTransform, animateMotion）
6. 所有动画必须设置 repeatCount="indefinite" 实现无限循环
7. 使用鲜艳的颜色

示例（旋转的方块）：
<svg viewBox="0 0 400 300" xmlns="http://www.w3.org/2000/svg">
  <rect x="160" y="110" width="80" height="80" rx="12" fill="#1e90ff">
    <animateTransform attributeName="transform" type="rotate" from="0 200 150" to="360 200 150" dur="2s" repeatCount="indefinite"/>
  </rect>
</svg>

记住：直接输出 SVG 代码，不要任何其他文字！"""


def build_messages(prompt: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": f"请生成以下 SVG 动画：{prompt}"},
    ]


def validate_prompt(prompt: Any) -> str:
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValidationError("请输入有效的提示词")
    return prompt


class GenerationService:
    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        model_client: DeepSeekClient,
        rate_limiter: Optional[RateLimiter] = None,
        credit_service: Optional[CreditService] = None,
    ):
        self.db = db
        self.settings = settings
        self.model_client = model_client
        self.rate_limiter = rate_limiter
        self.credits = credit_service or CreditService(db)

    async def start(
        self,
        prompt: Any,
        user_id: Optional[str],
        client_id: str = "unknown",
    ) -> AsyncIterator[str]:
        """
        完成校验、计费并打开上游流，返回逐段文本的异步迭代器

        所有可以返回错误状态码的检查都在这里完成；迭代器开始产出后只能以关闭流结束。
        """
        mode = "billed" if user_id else "anonymous"
        try:
            prompt = validate_prompt(prompt)
        except ValidationError:
            GENERATION_REQUESTS.labels(mode, "invalid").inc()
            raise

        if not self.model_client.configured:
            GENERATION_REQUESTS.labels(mode, "config_error").inc()
            raise ConfigurationError("请先配置 DEEPSEEK_API_KEY")

        if user_id:
            await self._charge(user_id, prompt)
        else:
            await self._admit_anonymous(client_id)

        try:
            stream = await self.model_client.open_stream(build_messages(prompt))
        except UpstreamError:
            GENERATION_REQUESTS.labels(mode, "upstream_error").inc()
            if user_id:
                # 已扣积分不退还
                logger.warning("Upstream failed after debit; credit not refunded for user %s", user_id)
            raise

        GENERATION_REQUESTS.labels(mode, "streamed").inc()
        return self._relay(stream)

    async def _charge(self, user_id: str, prompt: str) -> int:
        cost = self.settings.generation_cost
        try:
            balance = await self.credits.get_balance(user_id)
        except NotFoundError:
            # 令牌有效但用户已不存在，与余额不足同样处理
            balance = 0
        if balance < cost:
            GENERATION_REQUESTS.labels("billed", "insufficient").inc()
            raise InsufficientCreditsError("积分不足，请充值")

        try:
            return await self.credits.adjust(
                user_id,
                -cost,
                TransactionType.USE,
                f"生成SVG动画: {prompt[:PROMPT_NOTE_LENGTH]}",
                require_sufficient=True,
            )
        except (InsufficientCreditsError, NotFoundError):
            GENERATION_REQUESTS.labels("billed", "insufficient").inc()
            raise InsufficientCreditsError("积分不足，请充值")

    async def _admit_anonymous(self, client_id: str) -> None:
        if not self.settings.allow_anonymous_generation:
            GENERATION_REQUESTS.labels("anonymous", "rejected").inc()
            raise AuthError("请先登录")
        if self.rate_limiter:
            await self.rate_limiter.hit(f"anon_generate:{client_id}")

    @staticmethod
    async def _relay(stream: CompletionStream) -> AsyncIterator[str]:
        # 客户端断开时生成器被关闭，内层 finally 负责释放上游连接
        fragments = stream.text_fragments()
        try:
            async for fragment in fragments:
                yield fragment
        finally:
            await fragments.aclose()
            await stream.aclose()

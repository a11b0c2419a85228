"""
上游模型客户端 - DeepSeek（OpenAI 兼容）流式对话接口
"""
import json
import logging
import re
from typing import Any, AsyncIterator, Optional

import httpx

from svgmotion.config import Settings
from svgmotion.exceptions import UpstreamError

logger = logging.getLogger(__name__)

STREAM_DONE = "[DONE]"

_SECRET_KV_PATTERN = re.compile(
    r"(?i)(api[-_ ]?key|authorization|token)\s*[:=]\s*([A-Za-z0-9\-_=]{8,})"
)
_SECRET_VALUE_PATTERN = re.compile(r"(?:sk-[A-Za-z0-9]{8,})")
_LONG_TOKEN_PATTERN = re.compile(r"(?<![A-Za-z0-9])[A-Za-z0-9\-_]{32,}(?![A-Za-z0-9])")


def _sanitize_error_detail(text: str) -> str:
    if not text:
        return ""
    sanitized = _SECRET_KV_PATTERN.sub(r"\1=***", text)
    sanitized = _SECRET_VALUE_PATTERN.sub("***", sanitized)
    sanitized = _LONG_TOKEN_PATTERN.sub("***", sanitized)
    sanitized = " ".join(sanitized.split())
    return sanitized[:200]


def _extract_error_message(payload: Any) -> str:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            for key in ("message", "detail", "type"):
                value = error.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
        for key in ("message", "detail", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return ""


def _safe_error_detail_from_bytes(status_code: int, body: bytes) -> str:
    message = ""
    if body:
        try:
            payload = json.loads(body.decode("utf-8", errors="ignore"))
        except ValueError:
            payload = None
        if payload is not None:
            message = _extract_error_message(payload)
    if not message:
        message = f"HTTP {status_code}"
    return _sanitize_error_detail(message)


def is_stream_done(line: str) -> bool:
    line = line.strip()
    return line.startswith("data:") and line[5:].strip() == STREAM_DONE


def extract_delta_content(line: str) -> Optional[str]:
    """
    从一行 SSE 记录中取出增量文本

    非 data 行、结束标记、格式错误的 JSON 以及没有文本内容的记录都返回 None。
    """
    line = line.strip()
    if not line.startswith("data:"):
        return None
    data = line[5:].strip()
    if not data or data == STREAM_DONE:
        return None
    try:
        payload = json.loads(data)
    except ValueError:
        return None
    try:
        content = payload["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None
    if isinstance(content, str) and content:
        return content
    return None


class CompletionStream:
    """一次上游流式响应，迭代结束或中途退出都会释放连接"""

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response):
        self._client = client
        self._response = response
        self._closed = False

    async def text_fragments(self) -> AsyncIterator[str]:
        try:
            async for line in self._response.aiter_lines():
                if is_stream_done(line):
                    break
                content = extract_delta_content(line)
                if content:
                    yield content
        except httpx.HTTPError as exc:
            logger.warning("Upstream stream interrupted: %s", _sanitize_error_detail(str(exc)))
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._response.aclose()
        finally:
            await self._client.aclose()


class DeepSeekClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.deepseek.com",
        model: str = "deepseek-chat",
        max_tokens: int = 4096,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        configured: Optional[bool] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.transport = transport
        self.configured = bool(api_key) if configured is None else configured

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "DeepSeekClient":
        return cls(
            api_key=settings.deepseek_api_key.strip(),
            base_url=settings.deepseek_base_url,
            model=settings.deepseek_model,
            max_tokens=settings.deepseek_max_tokens,
            timeout=settings.deepseek_timeout_seconds,
            transport=transport,
            configured=settings.has_model_api_key,
        )

    @property
    def completions_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    async def open_stream(self, messages: list[dict[str, str]]) -> CompletionStream:
        """
        发起流式请求，拿到 200 响应头后返回流对象

        Raises:
            UpstreamError: 网络错误或上游返回非 200
        """
        client = httpx.AsyncClient(timeout=self.timeout, transport=self.transport)
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": True,
            "max_tokens": self.max_tokens,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

        try:
            request = client.build_request("POST", self.completions_url, json=payload, headers=headers)
            response = await client.send(request, stream=True)
        except httpx.TimeoutException as exc:
            await client.aclose()
            logger.error("DeepSeek request timed out")
            raise UpstreamError("AI 服务响应超时") from exc
        except httpx.HTTPError as exc:
            await client.aclose()
            logger.error("DeepSeek request failed: %s", _sanitize_error_detail(str(exc)))
            raise UpstreamError() from exc

        if response.status_code != 200:
            try:
                body = await response.aread()
            except httpx.HTTPError:
                body = b""
            finally:
                await response.aclose()
                await client.aclose()
            detail = _safe_error_detail_from_bytes(response.status_code, body)
            logger.error("DeepSeek API error: status=%s detail=%s", response.status_code, detail)
            raise UpstreamError()

        return CompletionStream(client, response)

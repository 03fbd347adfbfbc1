"""OpenAI 兼容的 chat/completions Provider 适配器。

本模块负责：

1. 接收编排器给出的有序消息列表。
2. 结合构造时固定的生成参数，转换为 chat/completions 请求体。
3. 调用 HTTP 接口并把网络/认证/限流/服务端错误映射为 ProviderError 子类。
4. 将响应 JSON（或 SSE 流）解析为统一的 ChatResult / ChatStreamChunk。

OpenAI、Kimi、GLM 等兼容该协议的服务都通过 registry 中的 ProviderConfig 区分：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>
"""

import json
from typing import Any, Dict, Iterator, List, Optional, Sequence

import httpx

from kb_chat.domain.exceptions import (
    ApiError,
    AuthenticationError,
    MalformedResponseError,
    NetworkError,
    RateLimitError,
)
from kb_chat.domain.models import (
    ChatChoice,
    ChatMessage,
    ChatResult,
    ChatStreamChoice,
    ChatStreamChunk,
    ChatUsage,
    GenerationOptions,
)
from kb_chat.providers.registry import ProviderConfig


class ChatCompletionsClient:
    """chat/completions 协议的客户端实现。

    - name: Provider 名称（供日志/缓存命名空间使用）。
    - chat: 非流式调用，返回 ChatResult。
    - chat_stream: 流式调用，逐个 yield ChatStreamChunk。
    """

    def __init__(
        self,
        config: ProviderConfig,
        api_key: Optional[str],
        options: GenerationOptions,
        http_timeout: float = 30.0,
        base_url: Optional[str] = None,
    ):
        self.name = config.name
        self.options = options
        self._config = config
        self._api_key = api_key
        self._http_timeout = http_timeout
        self._base_url = (base_url or config.base_url).rstrip("/")

    # ---- 非流式 ----

    def chat(self, messages: Sequence[ChatMessage]) -> ChatResult:
        """执行一次非流式对话调用。

        步骤：
        1. 检查 API Key。
        2. 构造 HTTP 请求 payload。
        3. 发送请求并捕获网络错误/认证失败/限流/服务端错误。
        4. 使用统一的解析函数构造 ChatResult。
        """

        self._require_api_key()
        payload = self._build_payload(messages, stream=False)
        try:
            with httpx.Client(timeout=self._http_timeout, trust_env=False) as client:
                resp = client.post(
                    f"{self._base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name) from e
        self._raise_for_status(resp.status_code, resp.text)
        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponseError(
                code="MALFORMED_RESPONSE", message=f"Invalid JSON from {self.name}", provider=self.name
            ) from e
        if not isinstance(data, dict):
            raise MalformedResponseError(
                code="MALFORMED_RESPONSE", message=f"Unexpected payload from {self.name}", provider=self.name
            )
        return self._parse_response(data)

    # ---- 流式 ----

    def chat_stream(self, messages: Sequence[ChatMessage]) -> Iterator[ChatStreamChunk]:
        """执行一次流式对话调用，逐步 yield ChatStreamChunk。

        生成器被提前关闭时，with 块会一并关闭底层 HTTP 连接。
        """

        self._require_api_key()
        payload = self._build_payload(messages, stream=True)
        try:
            with httpx.Client(timeout=self._http_timeout, trust_env=False) as client:
                with client.stream(
                    "POST",
                    f"{self._base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                ) as resp:
                    if resp.status_code >= 400:
                        resp.read()
                        self._raise_for_status(resp.status_code, resp.text)
                    for line in resp.iter_lines():
                        if not line:
                            continue
                        data_str = line
                        if data_str.startswith("data:"):
                            data_str = data_str[5:].strip()
                        else:
                            data_str = data_str.strip()
                        if not data_str:
                            continue
                        if data_str == "[DONE]":
                            break
                        try:
                            payload_chunk = json.loads(data_str)
                        except json.JSONDecodeError:
                            continue
                        if not isinstance(payload_chunk, dict):
                            continue
                        yield self._parse_stream_chunk(payload_chunk)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name) from e

    # ---- 辅助方法 ----

    def _require_api_key(self) -> None:
        if not self._api_key:
            # 配置缺失也视为 Provider 侧失败，方便上层统一处理
            raise AuthenticationError(
                code="MISSING_API_KEY",
                message=f"{self.name.upper()}_API_KEY not set",
                http_status=401,
                provider=self.name,
            )

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _raise_for_status(self, status_code: int, body: str) -> None:
        if status_code in (401, 403):
            raise AuthenticationError(
                code="AUTH_FAILED", message=body, http_status=status_code, provider=self.name
            )
        if status_code == 429:
            # 限流错误交给上层做重试/退避
            raise RateLimitError(
                code="RATE_LIMIT", message=f"{self.name} rate limit", http_status=429, provider=self.name
            )
        if status_code >= 400:
            # 其他 HTTP 错误统一包装为 ApiError
            raise ApiError(code="API_ERROR", message=body, http_status=status_code, provider=self.name)

    def _build_payload(self, messages: Sequence[ChatMessage], stream: bool) -> dict:
        """将消息列表与生成参数转成请求 JSON。"""

        return {
            "model": self.options.model_id,
            "messages": [self._message_to_payload(m) for m in messages],
            "temperature": self.options.temperature,
            "max_tokens": self.options.max_output_tokens,
            "stream": stream,
        }

    def _parse_response(self, data: dict) -> ChatResult:
        """将原始响应 JSON 解析为统一的 ChatResult。"""

        choices: List[ChatChoice] = []
        for i, ch in enumerate(self._choices_of(data)):
            cm = self._build_chat_message(self._mapping_field(ch, "message"))
            choices.append(ChatChoice(index=ch.get("index", i), message=cm, finish_reason=ch.get("finish_reason")))
        return ChatResult(
            provider=self.name,
            model=data.get("model") or self.options.model_id,
            choices=choices,
            usage=self._parse_usage(data.get("usage")),
            raw=data,
        )

    def _parse_stream_chunk(self, data: dict) -> ChatStreamChunk:
        """解析流式响应中的单条增量。"""

        choices: List[ChatStreamChoice] = []
        for i, ch in enumerate(self._choices_of(data)):
            choices.append(
                ChatStreamChoice(
                    index=ch.get("index", i),
                    delta=self._build_chat_message(self._mapping_field(ch, "delta")),
                    finish_reason=ch.get("finish_reason"),
                )
            )
        return ChatStreamChunk(
            provider=self.name,
            model=data.get("model") or self.options.model_id,
            choices=choices,
            usage=self._parse_usage(data.get("usage")),
            raw=data,
        )

    def _malformed(self, detail: str) -> MalformedResponseError:
        return MalformedResponseError(
            code="MALFORMED_RESPONSE", message=f"Unexpected payload from {self.name}: {detail}", provider=self.name
        )

    def _choices_of(self, data: dict) -> List[Dict[str, Any]]:
        """choices 必须是由对象组成的列表，缺省视为空列表。"""

        raw = data.get("choices")
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise self._malformed("choices is not a list")
        for ch in raw:
            if not isinstance(ch, dict):
                raise self._malformed("choice is not an object")
        return raw

    def _mapping_field(self, choice: Dict[str, Any], key: str) -> Dict[str, Any]:
        value = choice.get(key)
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise self._malformed(f"{key} is not an object")
        return value

    @staticmethod
    def _parse_usage(usage_raw: Any) -> Optional[ChatUsage]:
        if not usage_raw or not isinstance(usage_raw, dict):
            return None
        return ChatUsage(
            prompt_tokens=usage_raw.get("prompt_tokens", 0),
            completion_tokens=usage_raw.get("completion_tokens", 0),
            total_tokens=usage_raw.get("total_tokens", 0),
        )

    def _build_chat_message(self, payload: Dict[str, Any]) -> ChatMessage:
        content = payload.get("content")
        if content is not None and not isinstance(content, str):
            raise self._malformed("content is not a string")
        return ChatMessage(
            role=payload.get("role") or "assistant",
            content=content or "",
        )

    @staticmethod
    def _message_to_payload(message: ChatMessage) -> Dict[str, Any]:
        return {"role": message.role, "content": message.content}

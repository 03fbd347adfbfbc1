"""Provider 抽象接口。

编排器不直接依赖具体厂商的 HTTP 细节，而是依赖此协议：

- 每个后端实现一个 ProviderClient。
- 生成参数（模型、温度、最大长度）在构造时固定，不随单次调用变化。
- 任何失败都以 ProviderError 子类抛出，编排器只负责透传。
"""

from typing import Iterator, Protocol, Sequence

from kb_chat.domain.models import ChatMessage, ChatResult, ChatStreamChunk, GenerationOptions


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志与缓存命名空间。
    - options: 构造时校验过的生成参数。
    - chat(messages): 提交完整有序历史，返回一个 ChatResult。
    - chat_stream(messages): 惰性产出增量，有限且不可重放。
    """

    name: str
    options: GenerationOptions

    def chat(self, messages: Sequence[ChatMessage]) -> ChatResult:
        ...

    def chat_stream(self, messages: Sequence[ChatMessage]) -> Iterator[ChatStreamChunk]:
        """执行一次流式对话调用，逐步产出增量。"""

        ...

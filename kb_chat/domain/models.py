"""统一的对话与结果数据模型。

本模块定义了编排器与 Provider 之间共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant）。
- ChatResult: 从 Provider 解析后的非流式响应。
- ChatStreamChunk: 流式响应中的一次增量。
- GenerationOptions: 模型名、温度、最大输出长度，构造时一次性校验。

所有 Provider 适配器都只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from kb_chat.domain.exceptions import ValidationError


# LLM 消息角色类型（与 OpenAI 兼容接口的 role 字段对应）
Role = Literal["system", "user", "assistant"]


@dataclass
class ChatMessage:
    """一条对话消息，既可用于请求，也可用于响应。

    - role: 消息角色，如 system/user/assistant。
    - content: 纯文本内容，不为 None；只有流式增量允许为空串。
    - meta: 附加元数据（用量、provider 信息等），不发给 Provider，
      也不参与缓存指纹计算。
    """

    role: Role
    content: str
    meta: Dict[str, Any] = field(default_factory=dict)

    def copy(self) -> "ChatMessage":
        return ChatMessage(role=self.role, content=self.content, meta=dict(self.meta))


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int

    def as_dict(self) -> Dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class ChatChoice:
    """单个候选回答（目前通常只用 index=0 的一条）。"""

    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatResult:
    """一次非流式调用的最终结果。

    - provider: Provider 名（如 "openai"）。
    - model: 实际请求的模型 ID。
    - choices: 一个或多个候选回答。
    - usage: 可选的 token 使用统计。
    - raw: 原始响应 JSON，用于调试或日志记录。
    """

    provider: str
    model: str
    choices: List[ChatChoice]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None

    @property
    def first_message(self) -> Optional[ChatMessage]:
        if not self.choices:
            return None
        return self.choices[0].message

    @property
    def first_text(self) -> Optional[str]:
        message = self.first_message
        return message.content if message is not None else None


@dataclass
class ChatStreamChoice:
    """流式返回中的单个候选增量。"""

    index: int
    delta: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatStreamChunk:
    """流式对话的增量结果，结构与 ChatResult 类似。

    每个 chunk 由若干 choice 组成，choice.delta 代表本次增量内容。
    """

    provider: str
    model: str
    choices: List[ChatStreamChoice]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None

    @property
    def text(self) -> str:
        return "".join(ch.delta.content or "" for ch in self.choices)


class GenerationOptions(BaseModel):
    """生成参数，构造后不可变。

    未知字段或越界取值在构造时直接拒绝，而不是等到请求时才失败。
    """

    model_config = ConfigDict(frozen=True, extra="forbid", protected_namespaces=())

    model_id: str = Field(min_length=1, description="后端模型 ID，例如 gpt-4")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="采样温度")
    max_output_tokens: int = Field(default=2000, ge=1, description="单次生成的最大 token 数")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GenerationOptions":
        """从松散的键值配置构造，校验失败统一转换为 ValidationError。"""

        try:
            return cls(**dict(data))
        except PydanticValidationError as exc:
            problems = [
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in exc.errors()
            ]
            raise ValidationError(
                code="INVALID_GENERATION_OPTIONS",
                message="; ".join(problems),
            ) from exc

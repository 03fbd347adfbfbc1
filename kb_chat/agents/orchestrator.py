"""会话编排核心模块。

负责：注入一次知识库系统上下文、维护线性对话历史、
把历史交给 Provider（非流式路径先查缓存）、把流式增量合并回历史。
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Literal, Optional, Tuple
from uuid import uuid4
import threading
import time
import logging

from kb_chat.domain.cache import ResponseCache, fingerprint_messages
from kb_chat.domain.exceptions import (
    InvalidInputError,
    KnowledgeUnavailableError,
    ProviderError,
    SourceUnavailableError,
    StreamCancelledError,
)
from kb_chat.domain.knowledge import KnowledgeSource
from kb_chat.domain.models import ChatMessage, ChatUsage
from kb_chat.infrastructure.logging.logger import get_logger
from kb_chat.prompts import build_system_prompt, load_system_prompt
from kb_chat.providers.base import ProviderClient


log = get_logger("orchestrator")

OrchestratorState = Literal["uninitialized", "ready"]


@dataclass
class OrchestratorConfig:
    cache_ttl_seconds: Optional[float] = 3600.0
    fallback_reply: str = "I couldn't generate a response."
    system_prompt_template: Optional[str] = None  # 为空时使用 prompts/en 下的模板


class ConversationOrchestrator:
    """单会话编排器。

    一个实例只服务一个交互调用方，内部不加锁：调用方必须保证上一次调用
    （包括把流式生成器消费完或关闭）结束后再发起下一次调用。

    Provider 失败时已追加的用户消息不会回滚，历史末尾可能出现没有回答的用户消息。
    """

    def __init__(
        self,
        provider: ProviderClient,
        knowledge_source: KnowledgeSource,
        cache: Optional[ResponseCache] = None,
        config: Optional[OrchestratorConfig] = None,
    ):
        self._provider = provider
        self._knowledge_source = knowledge_source
        self._cache = cache
        self._config = config or OrchestratorConfig()
        self._template = (
            self._config.system_prompt_template
            if self._config.system_prompt_template is not None
            else load_system_prompt()
        )
        self._history: List[ChatMessage] = []
        self._knowledge_text: Optional[str] = None

    # ---- 状态 ----

    @property
    def state(self) -> OrchestratorState:
        return "ready" if self._knowledge_text is not None else "uninitialized"

    @property
    def history(self) -> Tuple[ChatMessage, ...]:
        """历史快照，返回副本，外部修改不影响内部状态。"""

        return tuple(m.copy() for m in self._history)

    # ---- 操作 ----

    def ensure_context_loaded(self) -> None:
        """首次使用时加载知识库并在位置 0 插入 system 消息，之后为空操作。"""

        if self._knowledge_text is not None:
            return
        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}"}
        self._log(logging.INFO, "Loading knowledge base into conversation context", log_ctx)
        try:
            text = self._knowledge_source.combined_text()
        except (SourceUnavailableError, OSError) as exc:
            self._log(logging.ERROR, "Knowledge base unavailable", log_ctx, error=str(exc))
            raise KnowledgeUnavailableError(
                code="KNOWLEDGE_UNAVAILABLE",
                message=f"Knowledge base could not be loaded: {exc}",
                http_status=503,
            ) from exc

        system_message = ChatMessage(role="system", content=build_system_prompt(text, self._template))
        self._history.insert(0, system_message)
        self._knowledge_text = text
        self._log(
            logging.INFO,
            "Knowledge base loaded into conversation context",
            log_ctx,
            knowledge_chars=len(text),
        )

    def send_message(self, user_text: str) -> str:
        """发送一条消息并返回完整回答。

        缓存命中时不调用 Provider，也不再写缓存；Provider 失败时记录日志并原样抛出。
        """

        self._validate(user_text)
        start_time = time.time()
        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}", "mode": "send"}

        self.ensure_context_loaded()
        self._history.append(ChatMessage(role="user", content=user_text))
        self._log(logging.DEBUG, "Added user message to conversation history", log_ctx)

        fingerprint = fingerprint_messages(self._history, namespace=self._cache_namespace())
        cached = self._cache_get(fingerprint, log_ctx)
        if cached is not None:
            self._history.append(ChatMessage(role="assistant", content=cached, meta={"cached": True}))
            self._log(logging.INFO, "Served response from cache", log_ctx, fingerprint=fingerprint)
            return cached

        self._log(
            logging.INFO,
            "Calling provider",
            log_ctx,
            provider=self._provider.name,
            model=self._provider.options.model_id,
            message_count=len(self._history),
        )
        try:
            result = self._provider.chat(self._snapshot())
        except ProviderError as exc:
            self._log(logging.ERROR, "Error sending message to provider", log_ctx, code=exc.code, error=exc.message)
            raise

        reply = result.first_message
        if reply is None or not reply.content:
            self._log(logging.WARNING, "Received empty response", log_ctx)
            return self._config.fallback_reply

        self._history.append(
            ChatMessage(
                role="assistant",
                content=reply.content,
                meta={"provider": result.provider, "model": result.model, "usage": self._usage_meta(result.usage)},
            )
        )
        self._cache_put(fingerprint, reply.content, log_ctx)
        self._log(
            logging.INFO,
            "Chat response generated successfully",
            log_ctx,
            elapsed_seconds=round(time.time() - start_time, 2),
            **self._usage_meta(result.usage),
        )
        return reply.content

    def stream_message(
        self,
        user_text: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> Iterator[str]:
        """流式发送一条消息，逐个返回非空文本片段。

        输入校验在调用时立即进行；上下文加载与追加用户消息发生在第一次迭代时。
        流正常结束后把所有片段拼成一条 assistant 消息写入历史；
        失败、取消（cancel_event 被置位）或提前关闭时不写入任何 assistant 消息。
        流式结果从不读写缓存。
        """

        self._validate(user_text)
        return self._stream(user_text, cancel_event)

    def clear_history(self) -> None:
        """清空历史并丢弃已加载的知识库文本，下次调用会重新读取知识源。"""

        self._history.clear()
        self._knowledge_text = None
        self._log(logging.INFO, "Conversation history cleared", {})

    # ---- 内部实现 ----

    def _stream(self, user_text: str, cancel_event: Optional[threading.Event]) -> Iterator[str]:
        start_time = time.time()
        log_ctx: Dict[str, Any] = {"trace_id": f"tr-{uuid4().hex}", "mode": "stream"}

        self.ensure_context_loaded()
        self._history.append(ChatMessage(role="user", content=user_text))
        self._log(logging.DEBUG, "Added user message to conversation history for streaming", log_ctx)
        self._check_cancelled(cancel_event)

        self._log(
            logging.INFO,
            "Calling provider (stream)",
            log_ctx,
            provider=self._provider.name,
            model=self._provider.options.model_id,
            message_count=len(self._history),
        )
        stream = self._provider.chat_stream(self._snapshot())
        pieces: List[str] = []
        usage_meta: Dict[str, Any] = {}
        try:
            for chunk in stream:
                self._check_cancelled(cancel_event)
                if chunk.usage:
                    usage_meta = self._usage_meta(chunk.usage)
                delta_text = chunk.text
                if not delta_text:
                    continue
                pieces.append(delta_text)
                yield delta_text
                self._check_cancelled(cancel_event)
        except ProviderError as exc:
            self._log(
                logging.ERROR,
                "Streaming failed, partial response discarded",
                log_ctx,
                code=exc.code,
                error=exc.message,
                fragments=len(pieces),
            )
            raise
        except StreamCancelledError:
            self._log(logging.WARNING, "Streaming cancelled, partial response discarded", log_ctx, fragments=len(pieces))
            raise
        except GeneratorExit:
            self._log(logging.WARNING, "Stream closed by caller, partial response discarded", log_ctx, fragments=len(pieces))
            raise
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()

        if not pieces:
            self._log(logging.WARNING, "Stream completed without content", log_ctx)
            return
        self._history.append(
            ChatMessage(
                role="assistant",
                content="".join(pieces),
                meta={"provider": self._provider.name, "usage": usage_meta},
            )
        )
        self._log(
            logging.INFO,
            "Streaming response completed and added to history",
            log_ctx,
            fragments=len(pieces),
            elapsed_seconds=round(time.time() - start_time, 2),
            **usage_meta,
        )

    @staticmethod
    def _validate(user_text: str) -> None:
        if user_text is None or not str(user_text).strip():
            raise InvalidInputError()

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise StreamCancelledError()

    def _snapshot(self) -> List[ChatMessage]:
        return [m.copy() for m in self._history]

    def _cache_namespace(self) -> str:
        return f"{self._provider.name}:{self._provider.options.model_id}"

    def _cache_get(self, fingerprint: str, log_ctx: Dict[str, Any]) -> Optional[str]:
        if self._cache is None:
            return None
        try:
            return self._cache.get(fingerprint)
        except Exception as exc:
            # 缓存只是优化层，故障时降级为直接调用 Provider
            self._log(logging.WARNING, "Cache lookup failed, falling back to provider", log_ctx, error=str(exc))
            return None

    def _cache_put(self, fingerprint: str, response: str, log_ctx: Dict[str, Any]) -> None:
        if self._cache is None:
            return
        try:
            self._cache.put(fingerprint, response, self._config.cache_ttl_seconds)
        except Exception as exc:
            self._log(logging.WARNING, "Cache write failed", log_ctx, error=str(exc))

    @staticmethod
    def _usage_meta(usage: Optional[ChatUsage]) -> Dict[str, Any]:
        return usage.as_dict() if usage else {}

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        log.log(level, message, extra={"extra": payload})

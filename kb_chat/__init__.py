"""kb_chat 顶层包。

该包提供基于本地 markdown 知识库的控制台问答助手，
包括配置加载、领域模型、Provider 适配、知识源、响应缓存、
会话编排与交互式命令行。
"""

from kb_chat.agents.orchestrator import ConversationOrchestrator, OrchestratorConfig

__all__ = ["ConversationOrchestrator", "OrchestratorConfig"]

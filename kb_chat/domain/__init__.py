"""领域层模型与协议。

包含：
- models: ChatMessage / ChatResult / ChatStreamChunk / GenerationOptions。
- knowledge: KnowledgeDocument 与 KnowledgeSource 协议、拼接规则。
- cache: ResponseCache 协议与会话指纹。
- exceptions: 业务异常类型定义。
"""

"""领域层模型与协议。

包含：
- models: Message / ProviderDescriptor / SessionState 等统一模型。
- history: 保留固定系统指令的有上限会话历史。
- conversation: 会话记录的存储模型及 ConversationStore 抽象。
- exceptions: 业务异常类型定义。
"""

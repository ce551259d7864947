"""领域层模型与协议。

包含：
- models: Turn / GenerationRequest / StreamChunk / Identity 模型。
- conversation: Transcript 累加器及 TranscriptStore 抽象。
- session: 登录状态枚举与 SessionTracker。
- exceptions: 业务异常类型定义。
"""

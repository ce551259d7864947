"""Chat Relay Core 顶层包。

该包提供基于 Gemini 的流式对话能力：
relay 服务（FastAPI）负责把对话历史转发给模型并逐块回传文本，
客户端负责维护对话记录、增量解码流式响应并异步持久化到 Supabase。
"""

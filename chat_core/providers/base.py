"""Provider 抽象接口。

Relay 不直接依赖具体厂商的 HTTP API，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（如 GeminiClient）。
- 负责：将 GenerationRequest 转成具体 API 请求，并把流式响应解析为 StreamChunk。

这样可以在不改 relay 代码的前提下替换生成服务，测试时也可以直接注入假实现。
"""

from typing import Iterable, Protocol

from chat_core.domain.models import GenerationRequest, StreamChunk


class ProviderClient(Protocol):
    """生成服务客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志/统计。
    - chat_stream(req): 执行一次流式生成，逐步产出增量。
      迭代器是惰性的、有限的、不可重启的；HTTP 层面的错误应在产出第一个增量之前抛出。
    """

    name: str

    def chat_stream(self, req: GenerationRequest) -> Iterable[StreamChunk]:
        ...

"""生成服务 Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供各厂商的具体实现 (gemini_client)。
"""

from typing import Optional

from chat_core.config.settings import settings
from chat_core.providers.base import ProviderClient
from chat_core.providers.gemini_client import GeminiClient
from chat_core.providers.registry import get_provider_config


# registry 中的 Provider 名称 -> 客户端实现
_CLIENT_CLASSES = {
    "gemini": GeminiClient,
}


def create_provider(name: Optional[str] = None, cfg=None) -> ProviderClient:
    """根据名称创建 Provider 实例，名称不区分大小写，未登记时抛出 KeyError。"""

    provider_cfg = get_provider_config(name or "gemini")
    return _CLIENT_CLASSES[provider_cfg.name](cfg or settings)

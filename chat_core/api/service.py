"""进程级客户端句柄。

生成服务、外部存储、身份服务和 relay 客户端在进程内只初始化一次，
relay 服务与 Transcript 客户端都从这里取得依赖，测试时可以传入假实现。
"""

import threading
from dataclasses import dataclass
from typing import Optional

from chat_core.client.persistence import PersistenceQueue
from chat_core.client.relay_client import RelayClient
from chat_core.client.transcript import TranscriptClient
from chat_core.config.settings import settings
from chat_core.domain.conversation import TranscriptStore
from chat_core.domain.exceptions import BusinessError
from chat_core.domain.models import Identity
from chat_core.infrastructure.auth.supabase_auth import SupabaseAuthClient
from chat_core.infrastructure.logging.logger import logger
from chat_core.infrastructure.storage.supabase_store import SupabaseMessageStore
from chat_core.providers import create_provider
from chat_core.providers.base import ProviderClient
from chat_core.relay.handler import RelayHandler


@dataclass
class Clients:
    provider: ProviderClient
    relay_handler: RelayHandler
    store: TranscriptStore
    persistence: PersistenceQueue
    auth: SupabaseAuthClient
    relay_client: RelayClient


_clients: Optional[Clients] = None
_lock = threading.Lock()


def init_clients(
    cfg=settings,
    provider: Optional[ProviderClient] = None,
    store: Optional[TranscriptStore] = None,
    auth: Optional[SupabaseAuthClient] = None,
    relay_client: Optional[RelayClient] = None,
) -> Clients:
    """初始化进程级句柄。重复初始化视为错误，需要先 reset_clients()。"""
    global _clients
    with _lock:
        if _clients is not None:
            raise BusinessError(code="ALREADY_INITIALIZED", message="clients already initialized")
        provider = provider or create_provider(cfg=cfg)
        store = store or SupabaseMessageStore(cfg)
        _clients = Clients(
            provider=provider,
            relay_handler=RelayHandler(provider, cfg),
            store=store,
            persistence=PersistenceQueue(store, cfg),
            auth=auth or SupabaseAuthClient(cfg),
            relay_client=relay_client or RelayClient(cfg),
        )
        logger.info("Clients initialized", extra={"extra": {"provider": provider.name}})
        return _clients


def get_clients() -> Clients:
    """获取句柄；尚未初始化时按默认配置初始化。"""
    with _lock:
        current = _clients
    if current is not None:
        return current
    try:
        return init_clients()
    except BusinessError as e:
        if e.code != "ALREADY_INITIALIZED":
            raise
        return _clients


def reset_clients() -> None:
    global _clients
    with _lock:
        current, _clients = _clients, None
    if current is not None:
        current.persistence.close(timeout=5.0)


def create_transcript_client(identity: Identity) -> TranscriptClient:
    clients = get_clients()
    return TranscriptClient(
        identity=identity,
        relay=clients.relay_client,
        store=clients.store,
        persistence=clients.persistence,
    )

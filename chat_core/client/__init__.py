"""客户端：维护对话、消费 relay 字节流并持久化最终记录。"""

from chat_core.client.decoder import StreamDecoder
from chat_core.client.persistence import PersistenceQueue
from chat_core.client.relay_client import RelayClient
from chat_core.client.transcript import (
    GENERIC_ERROR_TEXT,
    ClientState,
    TranscriptClient,
    welcome_turn,
)

__all__ = [
    "GENERIC_ERROR_TEXT",
    "ClientState",
    "PersistenceQueue",
    "RelayClient",
    "StreamDecoder",
    "TranscriptClient",
    "welcome_turn",
]

"""Transcript 客户端。

每次发送的状态流转：

    IDLE -> SENDING -> STREAMING -> FINALIZING -> IDLE
               \\            \\
                +-----------+---> ERROR -> IDLE

- SENDING: 立即追加 user 轮次（乐观更新），并把它交给持久化队列（不等待结果）。
- STREAMING: 携带完整历史请求 relay；拿到流后追加一个空的 model 轮次，
  每读到一块字节就解码并追加到该轮次，然后通知渲染层。
- FINALIZING: 流结束，冻结 model 轮次并写入外部存储。
- ERROR: 任何失败都转换为一条 model 轮次：错误文本包含 relay 的错误前缀时原样展示，
  否则展示通用提示。不会自动重试。

同一实例同一时间只允许一个发送在进行，并发的 send 调用直接返回 False。
"""

import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from chat_core.client.decoder import StreamDecoder
from chat_core.client.persistence import PersistenceQueue
from chat_core.client.relay_client import RelayClient
from chat_core.domain.conversation import Transcript, TranscriptStore
from chat_core.domain.exceptions import ERROR_MARKER
from chat_core.domain.models import Identity, Turn
from chat_core.infrastructure.logging.logger import logger


GENERIC_ERROR_TEXT = "Sorry, an unexpected error occurred."
WELCOME_TEMPLATE = "Welcome, {label}! Ask me anything."


class ClientState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    ERROR = "error"


Listener = Callable[[Tuple[Turn, ...]], None]


def welcome_turn(identity: Identity) -> Turn:
    return Turn(role="model", text=WELCOME_TEMPLATE.format(label=identity.display_label))


def error_text_for(exc: BaseException) -> str:
    text = str(exc)
    return text if ERROR_MARKER in text else GENERIC_ERROR_TEXT


class TranscriptClient:
    def __init__(
        self,
        identity: Identity,
        relay: RelayClient,
        store: TranscriptStore,
        persistence: Optional[PersistenceQueue] = None,
    ):
        self._identity = identity
        self._relay = relay
        self._store = store
        self._persistence = persistence or PersistenceQueue(store)
        self._transcript = Transcript()
        self._busy = threading.Lock()
        self._state = ClientState.IDLE
        self._listeners: List[Listener] = []

    @property
    def identity(self) -> Identity:
        return self._identity

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def persistence(self) -> PersistenceQueue:
        return self._persistence

    @property
    def is_busy(self) -> bool:
        return self._busy.locked()

    @property
    def awaiting_first_chunk(self) -> bool:
        """发送中且最后一条仍是 user 轮次，渲染层可据此显示“正在输入”。"""
        turns = self._transcript.snapshot()
        return self.is_busy and bool(turns) and turns[-1].role == "user"

    def snapshot(self) -> Tuple[Turn, ...]:
        return self._transcript.snapshot()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ---- 初始加载 ----

    def load(self) -> Tuple[Turn, ...]:
        """从外部存储读取当前身份的全部历史（按创建时间升序）。

        历史为空时合成一条欢迎语（不写入存储）；读取失败时只记录日志，保持空列表。
        """

        log_ctx = {"identity": self._identity.id}
        try:
            turns = self._store.query(self._identity)
        except Exception as e:
            self._log(logging.ERROR, f"Error fetching messages: {e}", log_ctx)
            self._transcript.reset([])
        else:
            self._transcript.reset(turns or [welcome_turn(self._identity)])
            self._log(logging.INFO, "Loaded transcript", log_ctx, turns=len(turns))
        snapshot = self._transcript.snapshot()
        self._notify(snapshot)
        return snapshot

    # ---- 发送 ----

    def send(self, text: str) -> bool:
        """发送一条用户输入并阻塞直到本轮结束。

        输入为空白或已有发送在进行时直接返回 False，不发出任何请求。
        """

        if not text or not text.strip():
            return False
        if not self._busy.acquire(blocking=False):
            return False
        try:
            self._run_send(text)
        finally:
            self._set_state(ClientState.IDLE)
            self._busy.release()
        return True

    def _run_send(self, text: str) -> None:
        start_time = time.time()
        log_ctx: Dict[str, Any] = {"send_id": f"sd-{uuid4().hex}", "identity": self._identity.id}

        self._set_state(ClientState.SENDING)
        user_turn = Turn(role="user", text=text)
        self._transcript.append(user_turn)
        self._notify(self._transcript.snapshot())
        self._persistence.submit(user_turn.role, user_turn.text, self._identity)

        history = list(self._transcript.snapshot())
        received = 0
        try:
            with self._relay.open(history) as chunks:
                self._set_state(ClientState.STREAMING)
                self._transcript.begin_model_turn()
                self._notify(self._transcript.snapshot())
                decoder = StreamDecoder()
                for data in chunks:
                    received += len(data)
                    self._append(decoder.feed(data))
                self._append(decoder.finish())
        except Exception as e:
            self._fail(e, log_ctx)
            return

        self._set_state(ClientState.FINALIZING)
        model_turn = self._transcript.finish_model_turn()
        self._notify(self._transcript.snapshot())
        self._persistence.submit(model_turn.role, model_turn.text, self._identity)
        self._log(
            logging.INFO,
            "Completed send",
            log_ctx,
            history_turns=len(history),
            bytes=received,
            reply_chars=len(model_turn.text),
            elapsed_seconds=round(time.time() - start_time, 2),
        )

    def _append(self, text: str) -> None:
        if text:
            self._transcript.append_chunk(text)
            self._notify(self._transcript.snapshot())

    def _fail(self, exc: Exception, log_ctx: Dict[str, Any]) -> None:
        failed_in = self._state
        self._set_state(ClientState.ERROR)
        self._log(
            logging.ERROR,
            f"Send failed: {exc}",
            log_ctx,
            state=failed_in.value,
            error_type=type(exc).__name__,
        )
        if self._transcript.streaming:
            # 已收到的部分保留在界面上，但不写入存储
            self._transcript.finish_model_turn()
        self._transcript.append(Turn(role="model", text=error_text_for(exc)))
        self._notify(self._transcript.snapshot())

    # ---- 辅助方法 ----

    def _set_state(self, state: ClientState) -> None:
        self._state = state

    def _notify(self, snapshot: Tuple[Turn, ...]) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning(f"Render listener failed: {e}")

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})

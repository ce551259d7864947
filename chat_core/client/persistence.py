"""持久化写队列。

客户端只把写请求放进队列就返回，由后台线程按 FIFO 顺序写入外部存储，
失败时按指数退避重试，超过上限后记录日志并丢弃，不会影响对话流程。
"""

import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from chat_core.config.settings import settings
from chat_core.domain.conversation import TranscriptStore
from chat_core.domain.exceptions import AuthError, ValidationError
from chat_core.domain.models import Identity, Role
from chat_core.infrastructure.logging.logger import logger


@dataclass(frozen=True)
class PendingWrite:
    role: Role
    text: str
    identity: Identity


class PersistenceQueue:
    def __init__(
        self,
        store: TranscriptStore,
        cfg=settings,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._store = store
        self._settings = cfg
        self._sleep = sleep
        self._queue: "queue.Queue[Optional[PendingWrite]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.failed = 0

    def submit(self, role: Role, text: str, identity: Identity) -> None:
        self._ensure_worker()
        self._queue.put(PendingWrite(role=role, text=text, identity=identity))

    def join(self) -> None:
        """阻塞直到队列中已有的写请求全部处理完（成功或放弃）。"""
        self._queue.join()

    def close(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None:
            return
        self._queue.put(None)
        thread.join(timeout)

    def _ensure_worker(self) -> None:
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._run, name="persistence-queue", daemon=True)
                self._thread.start()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return
                self._write(item)
            finally:
                self._queue.task_done()

    def _write(self, item: PendingWrite) -> None:
        max_retries = getattr(self._settings, "persist_max_retries", 3)
        base = getattr(self._settings, "persist_backoff_base", 0.5)
        cap = getattr(self._settings, "persist_backoff_max", 8.0)
        attempt = 0
        while True:
            try:
                self._store.insert(item.role, item.text, item.identity)
                return
            except Exception as e:
                retryable = not isinstance(e, (ValidationError, AuthError))
                if not retryable or attempt >= max_retries:
                    self.failed += 1
                    logger.error(f"Dropped {item.role} turn after {attempt + 1} attempt(s): {e}", extra={"extra": {
                        "identity": item.identity.id,
                        "role": item.role,
                        "error": str(e),
                    }})
                    return
                delay = min(base * (2 ** attempt), cap)
                logger.warning(f"Persist failed, retrying in {delay:.2f}s: {e}", extra={"extra": {
                    "identity": item.identity.id,
                    "role": item.role,
                    "attempt": attempt + 1,
                }})
                attempt += 1
                self._sleep(delay)

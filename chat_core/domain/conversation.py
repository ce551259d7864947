"""会话模型与存储抽象。

Transcript 是客户端独占的、按插入顺序排列的轮次列表。正在流式生成的
model 轮次保存在内部缓冲里，渲染层只能通过 snapshot() 拿到不可变视图。
"""

import threading
from typing import List, Optional, Protocol, Tuple

from .exceptions import BusinessError
from .models import Identity, Role, Turn


class TranscriptStore(Protocol):
    def insert(self, role: Role, text: str, identity: Identity) -> None:
        ...

    def query(self, identity: Identity) -> List[Turn]:
        ...


class Transcript:
    def __init__(self, turns: Optional[List[Turn]] = None):
        self._turns: List[Turn] = list(turns or [])
        self._pieces: Optional[List[str]] = None
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._turns) + (1 if self._pieces is not None else 0)

    @property
    def streaming(self) -> bool:
        return self._pieces is not None

    def reset(self, turns: List[Turn]) -> None:
        with self._lock:
            self._turns = list(turns)
            self._pieces = None

    def append(self, turn: Turn) -> None:
        with self._lock:
            if self._pieces is not None:
                raise BusinessError(code="TURN_IN_PROGRESS", message="model turn still streaming")
            self._turns.append(turn)

    def begin_model_turn(self) -> None:
        with self._lock:
            if self._pieces is not None:
                raise BusinessError(code="TURN_IN_PROGRESS", message="model turn still streaming")
            self._pieces = []

    def append_chunk(self, text: str) -> None:
        with self._lock:
            if self._pieces is None:
                raise BusinessError(code="NO_ACTIVE_TURN", message="no model turn is streaming")
            if text:
                self._pieces.append(text)

    def finish_model_turn(self) -> Turn:
        """冻结正在生成的 model 轮次并返回它。"""
        with self._lock:
            if self._pieces is None:
                raise BusinessError(code="NO_ACTIVE_TURN", message="no model turn is streaming")
            turn = Turn(role="model", text="".join(self._pieces))
            self._turns.append(turn)
            self._pieces = None
            return turn

    def snapshot(self) -> Tuple[Turn, ...]:
        with self._lock:
            if self._pieces is None:
                return tuple(self._turns)
            return tuple(self._turns) + (Turn(role="model", text="".join(self._pieces)),)

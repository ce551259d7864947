"""登录会话状态。

身份提供方的变化以离散事件的形式喂给 SessionTracker，
状态只有三种：未登录、加载中、已登录(identity)。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Literal, Optional
import threading

from .exceptions import ValidationError
from .models import Identity


class SessionStatus(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"


AuthEvent = Literal["INITIAL_SESSION", "SIGNED_IN", "SIGNED_OUT", "TOKEN_REFRESHED"]


@dataclass(frozen=True)
class SessionState:
    status: SessionStatus
    identity: Optional[Identity] = None


LOADING = SessionState(SessionStatus.LOADING)
UNAUTHENTICATED = SessionState(SessionStatus.UNAUTHENTICATED)


class SessionTracker:
    """把身份事件折叠成当前的 SessionState，并通知订阅者。"""

    def __init__(self) -> None:
        self._state = LOADING
        self._listeners: List[Callable[[SessionState], None]] = []
        self._lock = threading.Lock()

    @property
    def state(self) -> SessionState:
        return self._state

    def subscribe(self, listener: Callable[[SessionState], None]) -> Callable[[], None]:
        """注册监听器，返回取消订阅函数。"""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def handle(self, event: AuthEvent, identity: Optional[Identity] = None) -> SessionState:
        if event == "SIGNED_OUT":
            new_state = UNAUTHENTICATED
        elif event in ("INITIAL_SESSION", "SIGNED_IN", "TOKEN_REFRESHED"):
            new_state = SessionState(SessionStatus.AUTHENTICATED, identity) if identity else UNAUTHENTICATED
        else:
            raise ValidationError(code="UNKNOWN_AUTH_EVENT", message=str(event))
        with self._lock:
            changed = new_state != self._state
            self._state = new_state
        if changed:
            for listener in list(self._listeners):
                listener(new_state)
        return new_state

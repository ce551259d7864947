import pytest

pytest.importorskip("tkinter")

from chat_core.domain.models import Identity  # noqa: E402
from chat_core.domain.session import SessionState, SessionStatus, SessionTracker  # noqa: E402
from chat_core.gui.chat_app import App  # noqa: E402


class AuthStub:
    def __init__(self):
        self.tracker = SessionTracker()


def _bare_app():
    # 不创建 Tk 窗口，只验证会话切换的分发逻辑
    app = App.__new__(App)
    app.auth = AuthStub()
    app.chat_client = None
    app.opened = []
    app.show_chat = app.opened.append
    app.show_loading = lambda: app.opened.append("loading")
    app.show_auth = lambda: app.opened.append("auth")
    return app


def test_on_session_opens_chat_with_delivered_identity():
    app = _bare_app()
    identity = Identity(id="u-1", email="arun@example.com")
    # 回调执行前已经登出，tracker 当前没有身份
    app.auth.tracker.handle("SIGNED_OUT")
    app.on_session(SessionState(status=SessionStatus.AUTHENTICATED, identity=identity))
    assert app.opened == [identity]


def test_on_session_unauthenticated_shows_auth():
    app = _bare_app()
    app.on_session(SessionState(status=SessionStatus.UNAUTHENTICATED, identity=None))
    assert app.opened == ["auth"]
    assert app.chat_client is None

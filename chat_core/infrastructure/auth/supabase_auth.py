"""Supabase Auth（GoTrue）邮箱密码登录。

只实现界面需要的三个动作：登录、注册、登出。登录态只保存在内存中，
每个动作都会向 SessionTracker 发出对应的离散事件。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from chat_core.config.settings import settings
from chat_core.domain.exceptions import AuthError, NetworkError, ValidationError
from chat_core.domain.models import Identity
from chat_core.domain.session import SessionState, SessionTracker
from chat_core.infrastructure.logging.logger import logger


@dataclass(frozen=True)
class AuthSession:
    identity: Identity
    access_token: str = field(repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)


class SupabaseAuthClient:
    def __init__(self, cfg=settings, tracker: Optional[SessionTracker] = None):
        self._settings = cfg
        self.tracker = tracker or SessionTracker()
        self.current: Optional[AuthSession] = None

    def initial_session(self) -> SessionState:
        """会话只在内存中，进程启动时没有已保存的登录态。"""
        identity = self.current.identity if self.current else None
        return self.tracker.handle("INITIAL_SESSION", identity)

    def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        data = self._post("/token", {"email": email, "password": password}, params={"grant_type": "password"})
        session = self._to_session(data)
        self.current = session
        logger.info("Signed in", extra={"extra": {"identity": session.identity.id}})
        self.tracker.handle("SIGNED_IN", session.identity)
        return session

    def sign_up(self, email: str, password: str) -> Identity:
        """注册新用户。不会自动登录，调用方应提示用户再登录一次。"""
        data = self._post("/signup", {"email": email, "password": password})
        user = data.get("user") or data
        if not user.get("id"):
            raise AuthError(code="SIGNUP_FAILED", message="Sign up response carried no user")
        logger.info("Signed up", extra={"extra": {"identity": user["id"]}})
        return Identity(id=user["id"], email=user.get("email") or email)

    def sign_out(self) -> SessionState:
        session = self.current
        self.current = None
        if session is not None:
            try:
                self._post("/logout", None, token=session.access_token)
            except (AuthError, NetworkError) as e:
                # 服务端登出失败不影响本地登出
                logger.warning(f"Remote sign out failed: {e}")
        return self.tracker.handle("SIGNED_OUT")

    # ---- 辅助方法 ----

    def _post(
        self,
        path: str,
        body: Optional[Dict[str, Any]],
        params: Optional[Dict[str, str]] = None,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        base = getattr(self._settings, "supabase_url", None)
        anon_key = getattr(self._settings, "supabase_anon_key", None)
        if not base or not anon_key:
            raise ValidationError(code="MISSING_SUPABASE_CONFIG", message="SUPABASE_URL / SUPABASE_ANON_KEY not set")
        headers = {"apikey": anon_key, "Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(f"{base}/auth/v1{path}", json=body, params=params, headers=headers)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__)
        if resp.status_code >= 400:
            raise AuthError(code="AUTH_ERROR", message=self._error_message(resp), http_status=resp.status_code)
        if not resp.content:
            return {}
        return resp.json()

    @staticmethod
    def _to_session(data: Dict[str, Any]) -> AuthSession:
        user = data.get("user") or {}
        token = data.get("access_token")
        if not token or not user.get("id"):
            raise AuthError(code="AUTH_ERROR", message="Sign in response carried no session")
        identity = Identity(id=user["id"], email=user.get("email") or "", access_token=token)
        return AuthSession(identity=identity, access_token=token, refresh_token=data.get("refresh_token"))

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            data = resp.json()
        except ValueError:
            return resp.text or f"HTTP {resp.status_code}"
        if isinstance(data, dict):
            for key in ("error_description", "msg", "message", "error"):
                if data.get(key):
                    return str(data[key])
        return resp.text or f"HTTP {resp.status_code}"

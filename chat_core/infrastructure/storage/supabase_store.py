"""基于 Supabase REST（PostgREST）的对话存储。

表结构：messages(user_id, role, content, created_at)，created_at 由数据库默认值填充。
请求使用用户自己的 access token，以便数据库的行级权限按 user_id 生效。
"""

from typing import Any, Dict, List

import httpx

from chat_core.config.settings import settings
from chat_core.domain.conversation import TranscriptStore
from chat_core.domain.exceptions import NetworkError, StoreError, ValidationError
from chat_core.domain.models import ROLES, Identity, Role, Turn
from chat_core.infrastructure.logging.logger import logger


class SupabaseMessageStore(TranscriptStore):
    def __init__(self, cfg=settings):
        self._settings = cfg

    def insert(self, role: Role, text: str, identity: Identity) -> None:
        row = {"user_id": identity.id, "role": role, "content": text}
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(
                    self._table_url(),
                    json=row,
                    headers={**self._headers(identity), "Prefer": "return=minimal"},
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__)
        if resp.status_code >= 400:
            raise StoreError(code="STORE_WRITE_ERROR", message=resp.text, http_status=resp.status_code)

    def query(self, identity: Identity) -> List[Turn]:
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.get(
                    self._table_url(),
                    params={
                        "select": "role,content",
                        "user_id": f"eq.{identity.id}",
                        "order": "created_at.asc",
                    },
                    headers=self._headers(identity),
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__)
        if resp.status_code >= 400:
            raise StoreError(code="STORE_READ_ERROR", message=resp.text, http_status=resp.status_code)
        rows = resp.json()
        turns: List[Turn] = []
        for row in rows or []:
            role = row.get("role")
            if role not in ROLES:
                logger.warning(f"Skipping stored row with unknown role {role!r}")
                continue
            turns.append(Turn(role=role, text=row.get("content") or ""))
        return turns

    # ---- 辅助方法 ----

    def _table_url(self) -> str:
        base = getattr(self._settings, "supabase_url", None)
        if not base:
            raise ValidationError(code="MISSING_SUPABASE_URL", message="SUPABASE_URL not set")
        return f"{base}/rest/v1/{self._settings.messages_table}"

    def _headers(self, identity: Identity) -> Dict[str, Any]:
        anon_key = getattr(self._settings, "supabase_anon_key", None)
        if not anon_key:
            raise ValidationError(code="MISSING_SUPABASE_KEY", message="SUPABASE_ANON_KEY not set")
        return {
            "apikey": anon_key,
            "Authorization": f"Bearer {identity.access_token or anon_key}",
            "Content-Type": "application/json",
        }

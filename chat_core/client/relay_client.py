"""Relay 的 HTTP 客户端。

只负责发出请求和交出原始字节流，解码与渲染由 TranscriptClient 完成。
"""

from contextlib import contextmanager
from itertools import chain
from typing import Iterator, Sequence

import httpx

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ApiError, NetworkError
from chat_core.domain.models import Turn


class RelayClient:
    def __init__(self, cfg=settings):
        self._settings = cfg

    @contextmanager
    def open(self, history: Sequence[Turn]) -> Iterator[Iterator[bytes]]:
        """POST 对话历史并产出响应体的字节迭代器。

        非 2xx 状态抛出 ApiError（message 为响应体原文），网络错误抛出 NetworkError，
        没有任何响应字节时抛出 ApiError(code="EMPTY_BODY")。
        流式读取期间不设读超时，上游挂起时调用方会一直等待。
        """

        timeout = httpx.Timeout(self._settings.http_timeout, read=None)
        payload = {"history": [t.to_payload() for t in history]}
        try:
            with httpx.Client(timeout=timeout, trust_env=False) as client:
                with client.stream(
                    "POST",
                    self._settings.relay_url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                ) as resp:
                    if not resp.is_success:
                        resp.read()
                        raise ApiError(
                            code="RELAY_ERROR",
                            message=resp.text or f"HTTP {resp.status_code}",
                            http_status=resp.status_code,
                        )
                    chunks = resp.iter_bytes()
                    first = next((c for c in chunks if c), None)
                    if first is None:
                        raise ApiError(code="EMPTY_BODY", message="No response body", http_status=resp.status_code)
                    yield chain([first], chunks)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__)

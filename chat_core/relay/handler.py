"""Relay 处理器。

把客户端发来的完整对话历史转发给生成服务：
历史中除最后一条外的轮次作为会话上下文，最后一条（必须是 user）作为本轮输入。
生成服务产出的文本片段立即编码成 UTF-8 字节向外转发，不做额外缓冲；
上游结束即关闭输出流，没有任何结束标记。

处理器本身无状态，每次请求都重新携带全部历史。
"""

import logging
import time
from itertools import chain
from typing import Any, Dict, Iterator, List, Literal, Optional, Sequence
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ValidationError
from chat_core.domain.models import GenerationRequest, SafetySetting, StreamChunk, StreamUsage, Turn
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.base import ProviderClient
from chat_core.providers.registry import SAFETY_CATEGORIES


class TurnPayload(BaseModel):
    role: Literal["user", "model"]
    text: str


class RelayRequest(BaseModel):
    """POST /api/chat 的请求体：{ history: Turn[] }。"""

    history: List[TurnPayload] = Field(..., description="完整对话历史，最后一条为待回答的 user 轮次")

    @field_validator("history")
    @classmethod
    def validate_history(cls, v: List[TurnPayload]) -> List[TurnPayload]:
        if not v:
            raise ValueError("history must not be empty")
        if v[-1].role != "user":
            raise ValueError("last turn in history must have role 'user'")
        return v

    def turns(self) -> List[Turn]:
        return [Turn.from_payload(t.model_dump()) for t in self.history]


def parse_relay_request(body: bytes) -> List[Turn]:
    """解析并校验请求体，失败时抛出 ValidationError。"""

    try:
        req = RelayRequest.model_validate_json(body or b"")
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ())) or "body"
        msg = str(first.get("msg") or "invalid request body")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        raise ValidationError(code="INVALID_HISTORY", message=f"{loc}: {msg}")
    return req.turns()


class RelayHandler:
    def __init__(self, provider: ProviderClient, cfg=settings):
        self._provider = provider
        self._settings = cfg

    def build_request(self, history: Sequence[Turn]) -> GenerationRequest:
        if not history:
            raise ValidationError(code="INVALID_HISTORY", message="history must not be empty")
        prior, new_turn = list(history[:-1]), history[-1]
        if new_turn.role != "user":
            raise ValidationError(code="INVALID_HISTORY", message="last turn in history must have role 'user'")
        threshold = getattr(self._settings, "safety_threshold", "BLOCK_MEDIUM_AND_ABOVE")
        return GenerationRequest(
            model=getattr(self._settings, "default_model", "chat"),
            history=prior,
            message=new_turn.text,
            max_output_tokens=getattr(self._settings, "max_output_tokens", 1000),
            temperature=getattr(self._settings, "temperature", 0.7),
            safety_settings=[SafetySetting(category=c, threshold=threshold) for c in SAFETY_CATEGORIES],
        )

    def open_stream(self, history: Sequence[Turn]) -> Iterator[bytes]:
        """打开上游流并返回字节迭代器。

        会先向上游拉取到第一个非空片段（或上游直接结束）再返回，
        所以上游在开始输出前的任何失败都会在这里同步抛出，
        调用方可以据此返回 500，而不是一个已经开始的 200 流。
        """

        log_ctx: Dict[str, Any] = {"request_id": f"rl-{uuid4().hex}", "provider": self._provider.name}
        req = self.build_request(history)
        self._log(
            logging.INFO,
            "Opening upstream stream",
            log_ctx,
            model=req.model,
            history_turns=len(req.history),
        )
        chunks = iter(self._provider.chat_stream(req))
        first = self._next_text_chunk(chunks)
        return self._relay(first, chunks, log_ctx)

    @staticmethod
    def _next_text_chunk(chunks: Iterator[StreamChunk]) -> Optional[StreamChunk]:
        for chunk in chunks:
            if chunk.text:
                return chunk
        return None

    def _relay(
        self,
        first: Optional[StreamChunk],
        chunks: Iterator[StreamChunk],
        log_ctx: Dict[str, Any],
    ) -> Iterator[bytes]:
        start_time = time.time()
        count = 0
        total_bytes = 0
        finish_reason: Optional[str] = None
        usage: Optional[StreamUsage] = None
        try:
            for chunk in chain([first] if first is not None else [], chunks):
                # 用量和结束原因通常只出现在最后一个片段上
                finish_reason = chunk.finish_reason or finish_reason
                usage = chunk.usage or usage
                if not chunk.text:
                    continue
                data = chunk.text.encode("utf-8")
                count += 1
                total_bytes += len(data)
                yield data
        except Exception as e:
            # 已经开始输出，只能记录后让连接异常中断
            self._log(logging.ERROR, f"Upstream stream aborted: {e}", log_ctx, chunks=count, bytes=total_bytes)
            raise
        finally:
            close = getattr(chunks, "close", None)
            if close is not None:
                close()
        self._log(
            logging.INFO,
            "Completed relay stream",
            log_ctx,
            chunks=count,
            bytes=total_bytes,
            elapsed_seconds=round(time.time() - start_time, 2),
            finish_reason=finish_reason,
            prompt_tokens=usage.prompt_tokens if usage else None,
            completion_tokens=usage.completion_tokens if usage else None,
            total_tokens=usage.total_tokens if usage else None,
        )

    @staticmethod
    def _log(level: int, message: str, log_ctx: Dict[str, Any], **fields: Any) -> None:
        payload = dict(log_ctx)
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})

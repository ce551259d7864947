"""Gemini Provider 适配器。

使用 Generative Language REST API 的流式端点：
- URL: {base_url}/models/{model}:streamGenerateContent?alt=sse
- 认证: x-goog-api-key: <api_key>

请求体只依赖公共字段：contents/generationConfig/safetySettings。
响应为 SSE，每个 "data:" 行是一个 GenerateContentResponse JSON。
"""

import json
from typing import Any, Dict, Iterable, List, Optional

import httpx

from chat_core.config.settings import settings
from chat_core.domain.exceptions import (
    ApiError,
    NetworkError,
    RateLimitError,
    SafetyBlockedError,
    ValidationError,
)
from chat_core.domain.models import GenerationRequest, StreamChunk, StreamUsage, Turn
from chat_core.providers.registry import GEMINI_CONFIG, ModelConfig, resolve_model


# 这些 finishReason 表示候选内容被拦截，片段里不会有文本
BLOCKED_FINISH_REASONS = {"SAFETY", "RECITATION", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII"}


class GeminiClient:
    """Gemini Provider 客户端实现。"""

    name = "gemini"

    def __init__(self, cfg=settings):
        self._settings = cfg

    def chat_stream(self, req: GenerationRequest) -> Iterable[StreamChunk]:
        if not getattr(self._settings, "gemini_api_key", None):
            raise ValidationError(code="MISSING_API_KEY", message="GEMINI_API_KEY not set")
        model_cfg = resolve_model(GEMINI_CONFIG, req.model)
        payload = self._build_payload(req, model_cfg)
        base = getattr(self._settings, "gemini_base_url", None) or GEMINI_CONFIG.base_url
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                with client.stream(
                    "POST",
                    f"{base}/models/{model_cfg.provider_model}:streamGenerateContent",
                    params={"alt": "sse"},
                    json=payload,
                    headers={
                        "x-goog-api-key": self._settings.gemini_api_key,
                        "Content-Type": "application/json",
                    },
                ) as resp:
                    if resp.status_code == 429:
                        raise RateLimitError(code="RATE_LIMIT", message="Gemini rate limit", http_status=429)
                    if resp.status_code >= 400:
                        resp.read()
                        raise ApiError(
                            code="API_ERROR",
                            message=self._error_message(resp),
                            http_status=resp.status_code,
                        )
                    for line in resp.iter_lines():
                        if not line.startswith("data:"):
                            continue
                        data_str = line[5:].strip()
                        if not data_str:
                            continue
                        try:
                            payload_chunk = json.loads(data_str)
                        except json.JSONDecodeError:
                            continue
                        yield self._parse_stream_chunk(payload_chunk, req)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__)

    # ---- 辅助方法 ----

    def _build_payload(self, req: GenerationRequest, model_cfg: ModelConfig) -> dict:
        contents = [self._turn_to_payload(t) for t in req.history]
        contents.append({"role": "user", "parts": [{"text": req.message}]})
        payload: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "maxOutputTokens": req.max_output_tokens or model_cfg.max_tokens,
                "temperature": model_cfg.default_temperature if req.temperature is None else req.temperature,
            },
        }
        if req.safety_settings:
            payload["safetySettings"] = [
                {"category": s.category, "threshold": s.threshold} for s in req.safety_settings
            ]
        return payload

    @staticmethod
    def _turn_to_payload(turn: Turn) -> Dict[str, Any]:
        return {"role": turn.role, "parts": [{"text": turn.text}]}

    def _parse_stream_chunk(self, data: dict, req: GenerationRequest) -> StreamChunk:
        candidates: List[dict] = data.get("candidates") or []
        feedback = data.get("promptFeedback") or {}
        if not candidates and feedback.get("blockReason"):
            raise SafetyBlockedError(
                code="SAFETY_BLOCKED",
                message=f"Text not available. Prompt blocked due to {feedback['blockReason']}",
            )
        text = ""
        finish_reason: Optional[str] = None
        if candidates:
            cand = candidates[0]
            parts = (cand.get("content") or {}).get("parts") or []
            text = "".join(p.get("text") or "" for p in parts)
            finish_reason = cand.get("finishReason")
            if not text and finish_reason in BLOCKED_FINISH_REASONS:
                raise SafetyBlockedError(
                    code="SAFETY_BLOCKED",
                    message=f"Candidate was blocked due to {finish_reason}",
                )
        usage_raw = data.get("usageMetadata") or {}
        usage = None
        if usage_raw:
            usage = StreamUsage(
                prompt_tokens=usage_raw.get("promptTokenCount", 0),
                completion_tokens=usage_raw.get("candidatesTokenCount", 0),
                total_tokens=usage_raw.get("totalTokenCount", 0),
            )
        return StreamChunk(
            provider="gemini",
            model=req.model,
            text=text,
            finish_reason=finish_reason,
            usage=usage,
            raw=data,
        )

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        """从 Gemini 的错误 JSON 中取出 message，取不到时返回原始文本。"""

        try:
            data = resp.json()
        except ValueError:
            return resp.text or f"HTTP {resp.status_code}"
        if isinstance(data, list) and data:
            data = data[0]
        if isinstance(data, dict):
            err = data.get("error") or {}
            if isinstance(err, dict) and err.get("message"):
                status = err.get("status")
                prefix = f"[{resp.status_code} {status}]" if status else f"[{resp.status_code}]"
                return f"{prefix} {err['message']}"
        return resp.text or f"HTTP {resp.status_code}"

"""Relay HTTP 服务。

POST /api/chat
    请求体 { "history": [{ "role": "user"|"model", "text": "..." }, ...] }
    成功: 200, text/plain; charset=utf-8, 分块传输的生成文本，无任何分帧
    失败（开始输出之前）: 500, 纯文本 "Error from Gemini API: <message>"

GET /health
    { "status": "ok" }
"""

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from starlette.concurrency import run_in_threadpool

from chat_core.api.service import get_clients
from chat_core.config.settings import settings
from chat_core.domain.exceptions import relay_error_text
from chat_core.infrastructure.logging.logger import logger
from chat_core.relay.handler import RelayHandler, parse_relay_request


def get_relay_handler() -> RelayHandler:
    return get_clients().relay_handler


app = FastAPI(
    title="Chat Relay",
    description="Streams Gemini output for a conversation history as plain UTF-8 text",
)


@app.post("/api/chat")
async def chat(request: Request, handler: RelayHandler = Depends(get_relay_handler)) -> Response:
    try:
        history = parse_relay_request(await request.body())
        stream = await run_in_threadpool(handler.open_stream, history)
    except Exception as e:
        message = getattr(e, "message", None) or str(e) or "An unknown error occurred"
        logger.error(f"API Error: {message}", exc_info=True, extra={"extra": {
            "error_type": type(e).__name__,
            "code": getattr(e, "code", None),
        }})
        return PlainTextResponse(relay_error_text(message), status_code=500)
    return StreamingResponse(stream, media_type="text/plain; charset=utf-8")


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


def main() -> None:
    uvicorn.run(app, host=settings.relay_host, port=settings.relay_port)


if __name__ == "__main__":
    main()

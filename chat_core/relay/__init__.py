"""Relay：把对话历史转发给生成服务并以纯文本流返回。"""

from chat_core.relay.handler import RelayHandler, RelayRequest, parse_relay_request

__all__ = ["RelayHandler", "RelayRequest", "parse_relay_request"]

import logging

import pytest

from chat_core.domain.exceptions import ApiError, ValidationError
from chat_core.domain.models import StreamChunk, StreamUsage, Turn
from chat_core.relay.handler import RelayHandler, RelayRequest, parse_relay_request


class SettingsStub:
    default_model = "chat"
    max_output_tokens = 1000
    temperature = 0.7
    safety_threshold = "BLOCK_MEDIUM_AND_ABOVE"


class FakeProvider:
    name = "fake"

    def __init__(self, texts=(), error=None, fail_after=None):
        self.texts = list(texts)
        self.error = error
        self.fail_after = fail_after
        self.requests = []

    def chat_stream(self, req):
        self.requests.append(req)
        if self.error is not None and self.fail_after is None:
            raise self.error
        for i, text in enumerate(self.texts):
            if self.fail_after is not None and i == self.fail_after:
                raise self.error
            yield StreamChunk(provider="fake", model=req.model, text=text)


HISTORY = [
    Turn(role="user", text="hi"),
    Turn(role="model", text="hello"),
    Turn(role="user", text="tell me a joke"),
]


def test_build_request_splits_history():
    handler = RelayHandler(FakeProvider(), SettingsStub())
    req = handler.build_request(HISTORY)
    assert req.history == HISTORY[:2]
    assert req.message == "tell me a joke"
    assert req.max_output_tokens == 1000
    assert req.temperature == 0.7
    assert [s.category for s in req.safety_settings] == [
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
    ]


def test_build_request_rejects_model_last():
    handler = RelayHandler(FakeProvider(), SettingsStub())
    with pytest.raises(ValidationError):
        handler.build_request(HISTORY[:2])
    with pytest.raises(ValidationError):
        handler.build_request([])


def test_open_stream_forwards_encoded_fragments():
    provider = FakeProvider(texts=["", "Why did ", "", "the café close? ", "☕"])
    handler = RelayHandler(provider, SettingsStub())
    stream = handler.open_stream(HISTORY)
    parts = list(stream)
    assert parts == ["Why did ".encode(), "the café close? ".encode(), "☕".encode()]
    assert len(provider.requests) == 1


def test_open_stream_raises_before_first_byte():
    handler = RelayHandler(FakeProvider(error=ApiError(code="API_ERROR", message="quota")), SettingsStub())
    with pytest.raises(ApiError):
        handler.open_stream(HISTORY)


def test_open_stream_mid_stream_failure_propagates():
    provider = FakeProvider(texts=["partial", "never"], error=RuntimeError("dropped"), fail_after=1)
    stream = RelayHandler(provider, SettingsStub()).open_stream(HISTORY)
    assert next(stream) == b"partial"
    with pytest.raises(RuntimeError):
        next(stream)


def test_open_stream_empty_upstream_closes_immediately():
    stream = RelayHandler(FakeProvider(texts=[]), SettingsStub()).open_stream(HISTORY)
    assert list(stream) == []


def test_parse_relay_request():
    turns = parse_relay_request(b'{"history": [{"role": "user", "text": "hi"}]}')
    assert turns == [Turn(role="user", text="hi")]


@pytest.mark.parametrize(
    "body",
    [
        b"",
        b"not json",
        b'{"history": []}',
        b'{"history": [{"role": "user", "text": "a"}, {"role": "model", "text": "b"}]}',
        b'{"history": [{"role": "system", "text": "a"}]}',
        b'{"messages": []}',
    ],
)
def test_parse_relay_request_rejects(body):
    with pytest.raises(ValidationError):
        parse_relay_request(body)


class MeteredProvider:
    name = "fake"

    def chat_stream(self, req):
        yield StreamChunk(provider="fake", model=req.model, text="Hi")
        yield StreamChunk(
            provider="fake",
            model=req.model,
            text="",
            finish_reason="STOP",
            usage=StreamUsage(prompt_tokens=5, completion_tokens=1, total_tokens=6),
        )


def test_completed_stream_logs_finish_reason_and_usage(caplog):
    caplog.set_level(logging.INFO, logger="chat_core")
    stream = RelayHandler(MeteredProvider(), SettingsStub()).open_stream(HISTORY)
    assert list(stream) == [b"Hi"]

    done = [r for r in caplog.records if r.getMessage() == "Completed relay stream"]
    assert len(done) == 1
    fields = done[0].extra
    assert fields["finish_reason"] == "STOP"
    assert fields["total_tokens"] == 6
    assert fields["chunks"] == 1


def test_request_turns_come_from_payload():
    req = RelayRequest.model_validate({"history": [{"role": "model", "text": "a"}, {"role": "user", "text": "b"}]})
    assert req.turns() == [Turn.from_payload({"role": "model", "text": "a"}), Turn(role="user", text="b")]

import pytest

from chat_core.api import service
from chat_core.client.transcript import TranscriptClient
from chat_core.domain.exceptions import BusinessError
from chat_core.domain.models import Identity


class FakeProvider:
    name = "fake"

    def chat_stream(self, req):
        return iter(())


class MemoryStore:
    def insert(self, role, text, identity):
        pass

    def query(self, identity):
        return []


@pytest.fixture(autouse=True)
def _reset():
    service.reset_clients()
    yield
    service.reset_clients()


def test_init_clients_once():
    clients = service.init_clients(provider=FakeProvider(), store=MemoryStore())
    assert service.get_clients() is clients
    assert clients.relay_handler is not None
    with pytest.raises(BusinessError):
        service.init_clients(provider=FakeProvider(), store=MemoryStore())


def test_create_transcript_client_shares_handles():
    clients = service.init_clients(provider=FakeProvider(), store=MemoryStore())
    client = service.create_transcript_client(Identity(id="u-1", email="a@b.c"))
    assert isinstance(client, TranscriptClient)
    assert client.persistence is clients.persistence
    assert client.identity.id == "u-1"

from chat_core.client.persistence import PersistenceQueue
from chat_core.domain.exceptions import NetworkError, ValidationError
from chat_core.domain.models import Identity


IDENTITY = Identity(id="u-1", email="a@b.c")


class SettingsStub:
    persist_max_retries = 3
    persist_backoff_base = 0.5
    persist_backoff_max = 1.0


class FlakyStore:
    def __init__(self, failures=0, error=None):
        self.failures = failures
        self.error = error or NetworkError(code="NETWORK_ERROR", message="down")
        self.attempts = 0
        self.inserted = []

    def insert(self, role, text, identity):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise self.error
        self.inserted.append((role, text))

    def query(self, identity):
        return []


def test_persistence_retries_with_bounded_backoff():
    store = FlakyStore(failures=3)
    delays = []
    q = PersistenceQueue(store, SettingsStub(), sleep=delays.append)
    q.submit("user", "hi", IDENTITY)
    q.join()
    assert store.inserted == [("user", "hi")]
    assert delays == [0.5, 1.0, 1.0]
    assert q.failed == 0
    q.close(timeout=1)


def test_persistence_gives_up_after_max_retries():
    store = FlakyStore(failures=100)
    q = PersistenceQueue(store, SettingsStub(), sleep=lambda s: None)
    q.submit("user", "hi", IDENTITY)
    q.join()
    assert store.inserted == []
    assert store.attempts == 4
    assert q.failed == 1
    q.close(timeout=1)


def test_persistence_does_not_retry_validation_errors():
    store = FlakyStore(failures=1, error=ValidationError(code="MISSING_SUPABASE_URL", message="x"))
    q = PersistenceQueue(store, SettingsStub(), sleep=lambda s: None)
    q.submit("model", "answer", IDENTITY)
    q.join()
    assert store.attempts == 1
    assert q.failed == 1
    q.close(timeout=1)


def test_persistence_keeps_submission_order():
    store = FlakyStore(failures=1)
    q = PersistenceQueue(store, SettingsStub(), sleep=lambda s: None)
    q.submit("user", "question", IDENTITY)
    q.submit("model", "answer", IDENTITY)
    q.join()
    assert store.inserted == [("user", "question"), ("model", "answer")]
    q.close(timeout=1)

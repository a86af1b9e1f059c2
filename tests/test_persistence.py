import asyncio
from types import SimpleNamespace

import pytest

from starlive.core.errors import SessionNotFoundError
from starlive.persistence import SessionStore, get_session_store, register_backend
from starlive.persistence import memory


class FakeSession:
    def __init__(self, id):
        self.id = id
        self.closed = False

    def close(self):
        self.closed = True


@pytest.fixture
def clock(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr(memory, "time", SimpleNamespace(time=lambda: now[0]))
    return now


class TestSessionStore:
    def test_save_and_load(self):
        store = SessionStore()
        session = FakeSession("a")
        store.save(session)
        assert store.load("a") is session
        assert store.exists("a")
        assert len(store) == 1

    def test_get_unknown_raises(self):
        with pytest.raises(SessionNotFoundError):
            SessionStore().get("nope")

    def test_delete_closes(self):
        store = SessionStore()
        session = FakeSession("a")
        store.save(session)
        assert store.delete("a") is True
        assert session.closed
        assert store.delete("a") is False
        assert store.load("a") is None

    def test_expiry(self, clock):
        store = SessionStore(default_ttl=10)
        session = FakeSession("a")
        store.save(session)
        clock[0] += 11
        assert store.load("a") is None
        assert session.closed
        assert not store.exists("a")

    def test_access_extends_lifetime(self, clock):
        store = SessionStore(default_ttl=10)
        store.save(FakeSession("a"))
        clock[0] += 8
        assert store.load("a") is not None
        clock[0] += 8
        assert store.load("a") is not None

    def test_no_ttl_never_expires(self, clock):
        store = SessionStore()
        store.save(FakeSession("a"))
        clock[0] += 10 ** 6
        assert store.exists("a")

    def test_cleanup_expired(self, clock):
        store = SessionStore(default_ttl=10)
        old, fresh = FakeSession("old"), FakeSession("fresh")
        store.save(old)
        clock[0] += 5
        store.save(fresh)
        clock[0] += 6
        assert store.cleanup_expired() == 1
        assert old.closed and not fresh.closed
        assert store.exists("fresh")

    def test_default_store_is_shared(self):
        assert get_session_store() is get_session_store()

    def test_register_backend_once(self):
        from starlive.persistence import _active_backends
        store = SessionStore()
        register_backend(store)
        register_backend(store)
        assert _active_backends.count(store) == 1
        _active_backends.remove(store)


@pytest.mark.asyncio
class TestCleanupLoop:
    async def test_loop_removes_expired(self, clock):
        store = SessionStore(default_ttl=1, cleanup_interval=0)
        session = FakeSession("a")
        store.save(session)
        clock[0] += 2
        store.start_cleanup()
        await asyncio.sleep(0.01)
        store.stop_cleanup()
        assert session.closed
        assert len(store) == 0

    async def test_disabled_cleanup_does_not_start(self):
        store = SessionStore()
        store.configure_cleanup(enabled=False)
        store.start_cleanup()
        assert store._cleanup_task is None

    async def test_start_and_stop_all(self):
        from starlive.persistence import _active_backends, start_all_cleanup, stop_all_cleanup
        store = SessionStore()
        register_backend(store)
        start_all_cleanup()
        assert store._cleanup_task is not None
        stop_all_cleanup()
        assert store._cleanup_task is None
        _active_backends.remove(store)

import pytest

from storage.sessions import SessionStore


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_store(**kwargs):
    created = []

    def factory(session_id):
        created.append(session_id)
        return {"id": session_id}

    return SessionStore(factory, **kwargs), created


class TestSessionStore:
    def test_get_or_create_reuses_sessions(self):
        store, created = make_store()

        first = store.get_or_create("a")
        again = store.get_or_create("a")

        assert first is again
        assert created == ["a"]
        assert "a" in store
        assert store.get("missing") is None

    def test_fifo_eviction_at_capacity(self):
        store, _ = make_store(max_sessions=100)

        for i in range(101):
            store.get_or_create(f"s{i}")

        assert len(store) == 100
        assert store.evictions == 1
        assert "s0" not in store
        assert "s100" in store

    def test_fifo_ignores_access_order(self):
        store, _ = make_store(max_sessions=2)
        store.get_or_create("a")
        store.get_or_create("b")
        store.get_or_create("a")
        store.get_or_create("c")

        assert store.session_ids() == ["b", "c"]

    def test_lru_evicts_least_recently_used(self):
        store, _ = make_store(max_sessions=2, eviction="lru")
        store.get_or_create("a")
        store.get_or_create("b")
        store.get("a")
        store.get_or_create("c")

        assert store.session_ids() == ["a", "c"]
        assert store.evictions == 1

    def test_idle_sessions_expire(self):
        clock = FakeClock()
        store, created = make_store(ttl_seconds=60, clock=clock)
        first = store.get_or_create("a")

        clock.now = 30
        assert store.get("a") is first
        clock.now = 100
        second = store.get_or_create("a")

        assert second is not first
        assert created == ["a", "a"]
        assert store.expirations == 1
        assert store.evictions == 0

    def test_remove_and_stats(self):
        store, _ = make_store(max_sessions=5)
        store.get_or_create("a")

        assert store.remove("a") is True
        assert store.remove("a") is False
        stats = store.stats()
        assert stats["size"] == 0
        assert stats["maxSessions"] == 5
        assert stats["eviction"] == "fifo"

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            make_store(eviction="random")
        with pytest.raises(ValueError):
            make_store(max_sessions=0)

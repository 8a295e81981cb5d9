"""
checkbook Store and Replay Protection Tests
"""

import json

import pytest

from checkbook import (
    CardNonceAlreadyUsed, EventLog, RedemptionTokenStore, ReplayGuard, StaleNonce, Store,
    StoreError,
)

ACCOUNT = "0x00000000000000000000000000000000000000a1"
TOKEN_ID = "0x" + "ab" * 32


class TestStore:
    """Tests for the persistent store."""

    def test_set_get(self, store):
        store.set("ns", "key", {"value": 1})
        assert store.get("ns", "key") == {"value": 1}
        assert store.get("ns", "missing", 7) == 7

    def test_get_returns_copy(self, store):
        store.set("ns", "key", [1])
        store.get("ns", "key").append(2)
        assert store.get("ns", "key") == [1]

    def test_rollback_on_error(self, store):
        store.set("ns", "kept", 1)
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.set("ns", "kept", 2)
                store.set("ns", "new", 3)
                raise RuntimeError("abort")
        assert store.get("ns", "kept") == 1
        assert not store.contains("ns", "new")

    def test_nested_rollback_undoes_outer(self, store):
        with pytest.raises(StaleNonce):
            with store.transaction():
                store.set("ns", "outer", 1)
                with store.transaction():
                    store.set("ns", "inner", 2)
                    raise StaleNonce("abort")
        assert store.count("ns") == 0

    def test_handled_inner_failure_keeps_outer_writes(self, store):
        calls = []
        with store.transaction():
            store.set("ns", "outer", 1)
            try:
                with store.transaction():
                    store.set("ns", "inner", 2)
                    store.set("ns", "outer", 3)
                    store.on_commit(lambda: calls.append("inner"), lambda: calls.append("undo"))
                    raise StaleNonce("abort")
            except StaleNonce:
                pass
        assert store.get("ns", "outer") == 1
        assert not store.contains("ns", "inner")
        assert calls == ["undo"]

    def test_persistence(self, tmp_path):
        path = str(tmp_path / "state.json")
        store = Store(path)
        store.set("nonces", ACCOUNT, 5)
        reopened = Store(path)
        assert reopened.get("nonces", ACCOUNT) == 5

    def test_rolled_back_change_not_persisted(self, tmp_path):
        path = str(tmp_path / "state.json")
        store = Store(path)
        store.set("ns", "key", 1)
        with pytest.raises(ValueError):
            with store.transaction():
                store.set("ns", "key", 2)
                raise ValueError("abort")
        assert Store(path).get("ns", "key") == 1

    def test_tampered_file_rejected(self, tmp_path):
        path = tmp_path / "state.json"
        Store(str(path)).set("nonces", ACCOUNT, 1)
        payload = json.loads(path.read_text())
        payload["data"]["nonces"][ACCOUNT] = 0
        path.write_text(json.dumps(payload))
        with pytest.raises(StoreError):
            Store(str(path))

    def test_unreadable_file_rejected(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        with pytest.raises(StoreError):
            Store(str(path))

    def test_commit_hooks(self, store):
        calls = []
        with store.transaction():
            store.on_commit(lambda: calls.append("commit"), lambda: calls.append("rollback"))
            assert calls == []
        assert calls == ["commit"]

    def test_rollback_hooks(self, store):
        calls = []
        with pytest.raises(KeyError):
            with store.transaction():
                store.on_commit(lambda: calls.append("commit"), lambda: calls.append("rollback"))
                raise KeyError("abort")
        assert calls == ["rollback"]


class TestEventLog:
    """Tests for event recording."""

    def test_listener_after_commit(self, store):
        events = EventLog(store)
        seen = []
        events.subscribe(seen.append)
        with store.transaction():
            events.record("Ping", n=1)
            assert seen == []
        assert [e.name for e in seen] == ["Ping"]
        assert events.list("Ping")[0].args == {"n": 1}

    def test_rolled_back_event_dropped(self, store):
        events = EventLog(store)
        seen = []
        events.subscribe(seen.append)
        with pytest.raises(RuntimeError):
            with store.transaction():
                events.record("Ping", n=1)
                raise RuntimeError("abort")
        assert seen == []
        assert events.list() == []

    def test_event_from_handled_inner_failure_dropped(self, store):
        events = EventLog(store)
        seen = []
        events.subscribe(seen.append)
        with store.transaction():
            events.record("Kept")
            try:
                with store.transaction():
                    events.record("Dropped")
                    raise RuntimeError("abort")
            except RuntimeError:
                pass
        assert [e.name for e in seen] == ["Kept"]
        assert [e.name for e in events.list()] == ["Kept"]


class TestReplayGuard:
    """Tests for monotonic nonces."""

    def test_starts_at_zero(self, store):
        assert ReplayGuard(store).current(ACCOUNT) == 0

    def test_advance_sequence(self, store):
        guard = ReplayGuard(store)
        assert guard.check_and_advance(ACCOUNT, 1) == 1
        assert guard.check_and_advance(ACCOUNT, 2) == 2
        assert guard.current(ACCOUNT) == 2

    def test_replay_rejected(self, store):
        guard = ReplayGuard(store)
        guard.check_and_advance(ACCOUNT, 1)
        with pytest.raises(StaleNonce):
            guard.check_and_advance(ACCOUNT, 1)

    def test_skip_rejected(self, store):
        guard = ReplayGuard(store)
        with pytest.raises(StaleNonce):
            guard.check_and_advance(ACCOUNT, 2)
        assert guard.current(ACCOUNT) == 0

    def test_accounts_independent(self, store):
        guard = ReplayGuard(store)
        guard.check_and_advance(ACCOUNT, 1)
        assert guard.current("0x00000000000000000000000000000000000000a2") == 0


class TestRedemptionTokenStore:
    """Tests for single-use redemption ids."""

    def test_consume_once(self, store):
        tokens = RedemptionTokenStore(store)
        tokens.check_and_consume(TOKEN_ID)
        assert tokens.is_consumed(TOKEN_ID)
        with pytest.raises(CardNonceAlreadyUsed):
            tokens.check_and_consume(TOKEN_ID)

    def test_scopes_independent(self, store):
        """The same card nonce may be used once per card."""
        tokens = RedemptionTokenStore(store)
        tokens.check_and_consume(TOKEN_ID, scope="card-a")
        tokens.check_and_consume(TOKEN_ID, scope="card-b")
        assert not tokens.is_consumed(TOKEN_ID)

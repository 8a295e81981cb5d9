"""
checkbook - Persistent Store

Namespaced key-value store held in memory and persisted as JSON.

File format:
    {
      "version": "1.0",
      "updated_ts": 1700000000,
      "checksum": "<sha256 of canonical data>",
      "data": {"<namespace>": {"<key>": <value>, ...}, ...}
    }

A checksum mismatch on load raises StoreError. Changes made inside
`transaction()` are rolled back if the block raises and written to disk
once the outermost block exits cleanly.

Usage:
    store = Store("~/.checkbook/state.json")
    with store.transaction():
        store.set("nonces", account, 1)
"""

import copy
import hashlib
import json
import logging
import os
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from .errors import StoreError

log = logging.getLogger(__name__)

STORE_VERSION = "1.0"


def _checksum(data: dict) -> str:
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()


class Store:
    """Tamper-evident JSON key-value store. Memory-only when path is None."""

    def __init__(self, path: Optional[str] = None):
        self.path = os.path.expanduser(path) if path else None
        self._data: Dict[str, Dict[str, Any]] = {}
        self._depth = 0
        self._lock = threading.RLock()
        self._on_commit: List[Callable[[], None]] = []
        self._on_rollback: List[Callable[[], None]] = []
        self._load()

    def _load(self):
        """Load state from disk and verify its checksum."""
        if not self.path or not os.path.exists(self.path):
            return
        try:
            with open(self.path, "r") as f:
                payload = json.load(f)
        except (OSError, ValueError) as e:
            raise StoreError(f"failed to read {self.path}: {e}")

        data = payload.get("data", {})
        if payload.get("checksum") != _checksum(data):
            raise StoreError(f"checksum mismatch in {self.path}")
        self._data = data
        log.info(f"Loaded store {self.path} ({len(data)} namespaces)")

    def _save(self):
        """Write state atomically (temp file + rename)."""
        if not self.path:
            return
        payload = {
            "version": STORE_VERSION,
            "updated_ts": int(time.time()),
            "checksum": _checksum(self._data),
            "data": self._data,
        }
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        try:
            with open(tmp_path, "w") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StoreError(f"failed to write {self.path}: {e}")

    # ═══════════════════════════════════════════════════════════════════════
    # TRANSACTIONS
    # ═══════════════════════════════════════════════════════════════════════

    @contextmanager
    def transaction(self) -> Iterator["Store"]:
        """
        All-or-nothing unit of work. Re-entrant; the outermost block commits.

        A failing nested block restores its own snapshot and drops the hooks it
        registered, so an outer caller that handles the error commits only its
        own writes.
        """
        with self._lock:
            snapshot = copy.deepcopy(self._data)
            marks = (len(self._on_commit), len(self._on_rollback))
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                self._data = snapshot
                if self._depth == 0:
                    log.warning("Store transaction rolled back")
                    self._finish(self._on_rollback)
                else:
                    self._unwind(*marks)
                raise
            self._depth -= 1
            if self._depth == 0:
                try:
                    self._save()
                except StoreError:
                    self._data = snapshot
                    self._finish(self._on_rollback)
                    raise
                self._finish(self._on_commit)

    def _finish(self, hooks: List[Callable[[], None]]):
        self._on_commit, self._on_rollback = [], []
        for hook in hooks:
            hook()

    def _unwind(self, commit_mark: int, rollback_mark: int):
        """Drop hooks registered by a failed nested block and run its rollbacks."""
        hooks = self._on_rollback[rollback_mark:]
        del self._on_commit[commit_mark:]
        del self._on_rollback[rollback_mark:]
        for hook in hooks:
            hook()

    def on_commit(self, committed: Callable[[], None],
                  rolled_back: Optional[Callable[[], None]] = None):
        """Run `committed` once the current transaction commits, else `rolled_back`."""
        if self._depth == 0:
            committed()
            return
        self._on_commit.append(committed)
        if rolled_back:
            self._on_rollback.append(rolled_back)

    # ═══════════════════════════════════════════════════════════════════════
    # KEY-VALUE ACCESS
    # ═══════════════════════════════════════════════════════════════════════

    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        value = self._data.get(namespace, {}).get(key, default)
        return copy.deepcopy(value)

    def set(self, namespace: str, key: str, value: Any):
        value = copy.deepcopy(value)
        with self._lock:
            if self._depth:
                self._data.setdefault(namespace, {})[key] = value
                return
            with self.transaction():
                self._data.setdefault(namespace, {})[key] = value

    def delete(self, namespace: str, key: str):
        with self._lock:
            if self._depth:
                self._data.get(namespace, {}).pop(key, None)
                return
            with self.transaction():
                self._data.get(namespace, {}).pop(key, None)

    def contains(self, namespace: str, key: str) -> bool:
        return key in self._data.get(namespace, {})

    def items(self, namespace: str) -> Iterator[Tuple[str, Any]]:
        for key, value in list(self._data.get(namespace, {}).items()):
            yield key, copy.deepcopy(value)

    def count(self, namespace: str) -> int:
        return len(self._data.get(namespace, {}))

"""
checkbook - Replay Protection

Two independent schemes, both persisted in the Store:

  ReplayGuard           per-account counter; a nonce must be exactly stored + 1
  RedemptionTokenStore  single-use ids (blank checks, card nonces)

Both mutate state only inside the caller's store transaction, so a failed
settlement leaves them untouched.
"""

import logging
from typing import Optional

from .errors import CardNonceAlreadyUsed, StaleNonce
from .store import Store

log = logging.getLogger(__name__)

NONCES_NS = "nonces"
REDEEMED_NS = "redeemed"


class ReplayGuard:
    """Monotonic per-account nonces."""

    def __init__(self, store: Store):
        self.store = store

    def current(self, account: str) -> int:
        """Last accepted nonce (0 if the account never settled)."""
        return int(self.store.get(NONCES_NS, account, 0))

    def check(self, account: str, nonce: int):
        expected = self.current(account) + 1
        if nonce != expected:
            raise StaleNonce(f"nonce {nonce} for {account}, expected {expected}")

    def check_and_advance(self, account: str, nonce: int) -> int:
        """Accept `nonce` if it is exactly stored + 1 and store it."""
        with self.store.transaction():
            self.check(account, nonce)
            self.store.set(NONCES_NS, account, nonce)
        log.debug(f"Nonce {account} -> {nonce}")
        return nonce


class RedemptionTokenStore:
    """
    Consumed redemption ids.

    Blank check ids live in one global scope. Card nonces are scoped per
    card, so two cards may independently use the same nonce value.
    """

    def __init__(self, store: Store):
        self.store = store

    @staticmethod
    def _key(token_id: str, scope: Optional[str]) -> str:
        return f"{scope}:{token_id}" if scope else token_id

    def is_consumed(self, token_id: str, scope: Optional[str] = None) -> bool:
        return self.store.contains(REDEEMED_NS, self._key(token_id, scope))

    def check_and_consume(self, token_id: str, scope: Optional[str] = None) -> str:
        """Mark `token_id` used; fail if it already was."""
        key = self._key(token_id, scope)
        with self.store.transaction():
            if self.store.contains(REDEEMED_NS, key):
                raise CardNonceAlreadyUsed(f"{token_id} already redeemed")
            self.store.set(REDEEMED_NS, key, True)
        return token_id

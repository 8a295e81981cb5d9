"""
checkbook - Token Ledger

In-process ERC-20 style ledger used as the value-transfer collaborator.
Balances, allowances and first funders live in the shared Store, so a
settlement's debit rolls back together with its nonce update.

The first address that deposits into an account is recorded as its funder;
only a setup signature from that funder can bind a signer set to it.
"""

import logging
from typing import Optional

from .check_types import MAX_UINT256, normalize_address, validate_amount
from .errors import InsufficientBalance
from .events import EventLog
from .store import Store

log = logging.getLogger(__name__)

BALANCES_NS = "balances"
ALLOWANCES_NS = "allowances"
FUNDERS_NS = "funders"


class TokenLedger:
    """
    Multi-token balances keyed by (token, holder).

    Usage:
        ledger = TokenLedger(store)
        ledger.mint(token, funder, 1000)
        ledger.deposit(token, funder, account, 100)
    """

    def __init__(self, store: Store, events: Optional[EventLog] = None):
        self.store = store
        self.events = events

    def _emit(self, event_name: str, **args):
        if self.events:
            self.events.record(event_name, **args)

    def balance_of(self, token: str, holder: str) -> int:
        token, holder = normalize_address(token), normalize_address(holder)
        return int(self.store.get(BALANCES_NS, f"{token}:{holder}", 0))

    def allowance(self, token: str, owner: str, spender: str) -> int:
        token, owner, spender = (normalize_address(a) for a in (token, owner, spender))
        return int(self.store.get(ALLOWANCES_NS, f"{token}:{owner}:{spender}", 0))

    def funder_of(self, account: str) -> Optional[str]:
        return self.store.get(FUNDERS_NS, normalize_address(account))

    def _set_balance(self, token: str, holder: str, amount: int):
        self.store.set(BALANCES_NS, f"{token}:{holder}", amount)

    def mint(self, token: str, to: str, amount: int):
        token, to = normalize_address(token), normalize_address(to)
        validate_amount(amount)
        with self.store.transaction():
            self._set_balance(token, to, self.balance_of(token, to) + amount)
            self._emit("Transfer", token=token, sender=None, recipient=to, amount=str(amount))

    def transfer(self, token: str, sender: str, recipient: str, amount: int):
        token, sender, recipient = (normalize_address(a) for a in (token, sender, recipient))
        validate_amount(amount)
        with self.store.transaction():
            balance = self.balance_of(token, sender)
            if balance < amount:
                raise InsufficientBalance(f"{sender} holds {balance}, needs {amount}")
            self._set_balance(token, sender, balance - amount)
            self._set_balance(token, recipient, self.balance_of(token, recipient) + amount)
            self._emit("Transfer", token=token, sender=sender, recipient=recipient, amount=str(amount))

    def deposit(self, token: str, funder: str, account: str, amount: int):
        """Fund a virtual account; the first depositor becomes its funder."""
        account = normalize_address(account)
        with self.store.transaction():
            self.transfer(token, funder, account, amount)
            if self.funder_of(account) is None:
                self.store.set(FUNDERS_NS, account, normalize_address(funder))
                log.info(f"Account {account} funded first by {funder}")

    def approve(self, token: str, owner: str, spender: str, amount: int):
        token, owner, spender = (normalize_address(a) for a in (token, owner, spender))
        with self.store.transaction():
            self.store.set(ALLOWANCES_NS, f"{token}:{owner}:{spender}", amount)
            self._emit("Approval", token=token, owner=owner, spender=spender, amount=str(amount))

    def transfer_from(self, token: str, spender: str, owner: str, recipient: str, amount: int):
        """Move `amount` from owner to recipient on spender's allowance."""
        token, spender, owner = (normalize_address(a) for a in (token, spender, owner))
        with self.store.transaction():
            allowed = self.allowance(token, owner, spender)
            if allowed < amount:
                raise InsufficientBalance(f"allowance {allowed} of {spender} below {amount}")
            if allowed != MAX_UINT256:
                self.store.set(ALLOWANCES_NS, f"{token}:{owner}:{spender}", allowed - amount)
            self.transfer(token, owner, recipient, amount)

"""
checkbook - Transfer Executor

Settles checks against virtual accounts. One settlement is one store
transaction:

  1. derive the account from the claimed signer set
  2. setup signature must recover to the account's recorded funder
  3. instruction signatures must meet the threshold (and card proofs, if any)
  4. nonce advance or redemption token consumption
  5. ledger debit
  6. TransferSettled event + receipt

Any error rolls back everything done in steps 3-6.

Usage:
    executor = TransferExecutor(store, ledger, wallet_address)
    receipt = executor.settle(check)
"""

import logging
from typing import Callable, Optional, TypeVar

from .check_types import (
    MAX_UINT256, Check, Nonce, Receipt, ReplayToken, SignerSet, Signature,
    normalize_address, validate_amount,
)
from .derive import derive
from .digests import check_digest, setup_digest
from .errors import ArrayLengthMismatch, CheckError, SignerMismatch
from .events import EventLog
from .ledger import TokenLedger
from .policy import ThresholdPolicyEngine
from .replay import RedemptionTokenStore, ReplayGuard
from .signatures import SignatureVerifier
from .store import Store

log = logging.getLogger(__name__)

ACCOUNTS_NS = "accounts"

T = TypeVar("T")


def mask_secret(secret: str, visible_prefix: int = 10, visible_suffix: int = 4) -> str:
    """Mask a secret for safe logging. Never log full tokens or keys."""
    if not secret or len(secret) <= visible_prefix + visible_suffix:
        return "***"
    return f"{secret[:visible_prefix]}...{secret[-visible_suffix:]}"


class TransferExecutor:
    """Orchestrates derivation, verification, replay protection and the ledger."""

    def __init__(self, store: Store, ledger: TokenLedger, wallet_address: str,
                 policy: Optional[ThresholdPolicyEngine] = None,
                 events: Optional[EventLog] = None):
        self.store = store
        self.ledger = ledger
        self.wallet_address = normalize_address(wallet_address)
        self.policy = policy or ThresholdPolicyEngine()
        self.verifier: SignatureVerifier = self.policy.verifier
        self.events = events or ledger.events or EventLog(store)
        self.nonces = ReplayGuard(store)
        self.redemptions = RedemptionTokenStore(store)

    def account_for(self, signer_set: SignerSet) -> str:
        return derive(signer_set, self.wallet_address)

    # ═══════════════════════════════════════════════════════════════════════
    # SETTLEMENT
    # ═══════════════════════════════════════════════════════════════════════

    def settle(self, check: Check) -> Receipt:
        """
        Settle a check, all-or-nothing.

        Returns:
            Receipt with the account and resulting replay state

        Raises:
            CheckError subclass; no state has changed when it does
        """
        try:
            receipt = self.atomic(self.apply, check)
        except CheckError as e:
            log.warning(f"Rejected check to {check.recipient} ({check.amount}): {e}")
            raise
        log.info(f"Settled {receipt.amount} from {receipt.account} to {receipt.recipient}")
        return receipt

    def atomic(self, operation: Callable[..., T], *args, **kwargs) -> T:
        """Run `operation` as one store transaction."""
        with self.store.transaction():
            return operation(*args, **kwargs)

    def apply(self, check: Check) -> Receipt:
        """Settle `check` inside the caller's store transaction."""
        validate_amount(check.amount)
        signer_set = check.signer_set.validate()
        account = self.account_for(signer_set)

        self.verify_setup(account, signer_set, check.setup_signature)
        self.policy.verify(signer_set.signers, signer_set.threshold,
                           check_digest(check), check.signatures)

        cards_used = []
        if signer_set.cards:
            result = self.policy.verify_cards(signer_set.cards, signer_set.card_threshold,
                                              check.card_proofs)
            proofs = [p for p in check.card_proofs if p is not None]
            cards_used = list(zip(result.distinct_signers, proofs))
        elif any(p is not None for p in check.card_proofs):
            raise ArrayLengthMismatch("card proofs given for a signer set without cards")

        for card, proof in cards_used:
            self.redemptions.check_and_consume(proof.nonce, scope=card)

        return self.release(check.token, account, check.recipient, check.amount,
                            check.replay, data=check.data)

    def verify_setup(self, account: str, signer_set: SignerSet, setup_signature: Signature):
        """The funder of `account` must have signed this exact signer set."""
        recovered = self.verifier.recover(setup_digest(signer_set), setup_signature)
        funder = self.ledger.funder_of(account)
        if funder is None:
            raise SignerMismatch(f"account {account} has no recorded funder")
        if recovered != funder:
            raise SignerMismatch(f"setup signed by {recovered}, funder is {funder}")

    def release(self, token: str, account: str, recipient: str, amount: int,
                replay: ReplayToken, data: str = "") -> Receipt:
        """
        Apply replay protection and move value out of an already authorized
        account. Must run inside a store transaction.
        """
        validate_amount(amount)
        with self.store.transaction():
            if isinstance(replay, Nonce):
                state = self.nonces.check_and_advance(account, replay.value)
            else:
                state = self.redemptions.check_and_consume(replay.token_id)
                log.debug(f"Consumed redemption token {mask_secret(state)}")

            self._ensure_account(token, account)
            self.ledger.transfer_from(token, self.wallet_address, account, recipient, amount)

            receipt = Receipt(
                account=account,
                token=normalize_address(token),
                recipient=normalize_address(recipient),
                amount=amount,
                replay_kind=replay.kind,
                replay_state=state,
                data=data,
            )
            self.events.record("TransferSettled", **receipt.to_dict())
        return receipt

    def _ensure_account(self, token: str, account: str):
        """First use of an account approves the wallet for the full allowance."""
        key = f"{normalize_address(token)}:{account}"
        if self.store.contains(ACCOUNTS_NS, key):
            return
        self.ledger.approve(token, account, self.wallet_address, MAX_UINT256)
        self.store.set(ACCOUNTS_NS, key, True)
        self.events.record("AccountCreated", token=normalize_address(token), account=account)

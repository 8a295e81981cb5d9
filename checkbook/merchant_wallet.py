"""
checkbook - Merchant Wallet

Role-gated transfers between merchant order accounts and consumers.

Every order of a merchant has its own account, derive([merchant_id], 1) keyed
by the order id. The owner only authorizes, so changing it moves no funds.

Transfers out of an order account are meta-transactions: any relayer may
submit them, authorized by one signature from the merchant owner (or, for a
delegated MerchantOwner, a key holding the matching permission) over a digest
that includes the order account's next nonce.

  transfer_b2b                     order account -> other merchant's order account
  transfer_b2c                     order account -> consumer
  redeem_blank_check_to_merchant   consumer blank check -> order account
"""

import logging

from .check_types import (
    Check, Nonce, Receipt, RedemptionToken, Signature, normalize_address, normalize_bytes32,
)
from .derive import derive_order_account
from .digests import b2b_digest, b2c_digest
from .errors import ArrayLengthMismatch, SignerMismatch, Unauthorized
from .executor import TransferExecutor
from .merchant import (
    PERMISSION_B2B, PERMISSION_B2C, TRANSFER_B2B, TRANSFER_B2C,
    MerchantOwner, MerchantRegistry,
)

log = logging.getLogger(__name__)


class MerchantWallet:
    """
    Usage:
        wallet = MerchantWallet(executor, registry)
        account = wallet.order_account(merchant_id, order_id)
        receipt = wallet.transfer_b2c(token, merchant_id, order_id, consumer,
                                      amount, nonce, owner_signature)
    """

    def __init__(self, executor: TransferExecutor, registry: MerchantRegistry):
        self.executor = executor
        self.registry = registry
        self.store = executor.store
        self.events = executor.events

    def _owner(self, merchant_id: str) -> str:
        owner = self.registry.owner_of(merchant_id)
        if owner is None:
            raise Unauthorized(f"merchant owner not set for {merchant_id}")
        return owner

    def order_account(self, merchant_id: str, order_id: str) -> str:
        """Order account of a registered merchant."""
        self._owner(merchant_id)
        return derive_order_account(merchant_id, order_id, self.executor.wallet_address)

    def next_nonce(self, merchant_id: str, order_id: str) -> int:
        return self.executor.nonces.current(self.order_account(merchant_id, order_id)) + 1

    def _authorize(self, merchant_id: str, role: str, permission: str,
                   digest: bytes, signature: Signature) -> str:
        """Role check, then a 1-of-1 signature from the owner or a delegate."""
        if not self.registry.has_role(role, merchant_id):
            raise Unauthorized(f"merchant {merchant_id} lacks role {role[:10]}")
        owner = self._owner(merchant_id)

        if MerchantOwner.is_owner_contract(self.store, owner):
            signer = self.executor.verifier.recover(digest, signature)
            if not MerchantOwner(self.store, owner).has_permission(permission, signer):
                raise Unauthorized(f"{signer} has no permission on {owner}")
            return signer

        self.executor.policy.verify([owner], 1, digest, [signature])
        return owner

    # ═══════════════════════════════════════════════════════════════════════
    # TRANSFERS
    # ═══════════════════════════════════════════════════════════════════════

    def transfer_b2b(self, token: str, sender_merchant: str, sender_order_id: str,
                     recipient_merchant: str, recipient_order_id: str, amount: int,
                     nonce: int, signature: Signature) -> Receipt:
        """
        Move value between two merchants' order accounts.

        Raises:
            Unauthorized: sender lacks TRANSFER_B2B, or signer lacks permission
            StaleNonce: nonce is not the sender order account's next nonce
        """
        def operation() -> Receipt:
            sender = normalize_address(sender_merchant)
            recipient = normalize_address(recipient_merchant)
            digest = b2b_digest(normalize_address(token), sender, sender_order_id,
                                recipient, recipient_order_id, amount, nonce)
            signer = self._authorize(sender, TRANSFER_B2B, PERMISSION_B2B, digest, signature)
            receipt = self.executor.release(
                token, self.order_account(sender, sender_order_id),
                self.order_account(recipient, recipient_order_id), amount, Nonce(nonce))
            self.events.record(
                "TransferB2B", token=receipt.token, sender_merchant=sender,
                sender_order_id=normalize_bytes32(sender_order_id),
                recipient_merchant=recipient,
                recipient_order_id=normalize_bytes32(recipient_order_id),
                amount=str(amount), signer=signer)
            return receipt

        receipt = self.executor.atomic(operation)
        log.info(f"B2B {amount} {sender_merchant} -> {recipient_merchant}")
        return receipt

    def transfer_b2c(self, token: str, sender_merchant: str, sender_order_id: str,
                     recipient: str, amount: int, nonce: int,
                     signature: Signature) -> Receipt:
        """Move value from a merchant order account to a consumer."""
        def operation() -> Receipt:
            sender = normalize_address(sender_merchant)
            consumer = normalize_address(recipient)
            digest = b2c_digest(normalize_address(token), sender, sender_order_id,
                                consumer, amount, nonce)
            signer = self._authorize(sender, TRANSFER_B2C, PERMISSION_B2C, digest, signature)
            receipt = self.executor.release(
                token, self.order_account(sender, sender_order_id), consumer,
                amount, Nonce(nonce))
            self.events.record(
                "TransferB2C", token=receipt.token, sender_merchant=sender,
                sender_order_id=normalize_bytes32(sender_order_id),
                recipient=consumer, amount=str(amount), signer=signer)
            return receipt

        receipt = self.executor.atomic(operation)
        log.info(f"B2C {amount} {sender_merchant} -> {recipient}")
        return receipt

    def redeem_blank_check_to_merchant(self, check: Check, merchant_id: str,
                                       order_id: str) -> Receipt:
        """Settle a consumer's blank check into a merchant order account."""
        if not isinstance(check.replay, RedemptionToken):
            raise ArrayLengthMismatch("merchant redemption requires a blank check")

        def operation() -> Receipt:
            merchant = normalize_address(merchant_id)
            account = self.order_account(merchant, order_id)
            if check.recipient != account:
                raise SignerMismatch(f"check pays {check.recipient}, order account is {account}")
            receipt = self.executor.apply(check)
            self.events.record(
                "TransferC2B", token=receipt.token, sender=receipt.account,
                recipient_merchant=merchant, recipient_order_id=normalize_bytes32(order_id),
                amount=str(receipt.amount))
            return receipt

        receipt = self.executor.atomic(operation)
        log.info(f"C2B {receipt.amount} {receipt.account} -> {merchant_id}")
        return receipt

"""
checkbook

Multi-signature checks against deterministically derived virtual accounts.

Architecture:
  - Accounts are derived from (ordered signers, threshold); no setup step
  - A check moves value once it carries m distinct signer signatures and
    the funder's setup signature over the signer set
  - Replay protection: per-account nonces, or single-use blank check ids
  - Merchants: role-gated transfers out of per-order accounts

Usage:
    from checkbook import Checkbook, Store, SignerSet, Nonce, create_check, sign_setup

    book = Checkbook(Store(), wallet_address)
    signer_set = SignerSet((alice.address, bob.address), 2)
    account = book.executor.account_for(signer_set)

    book.ledger.mint(token, funder.address, 1000)
    book.ledger.deposit(token, funder.address, account, 100)

    check = create_check(token, 40, recipient, Nonce(1), signer_set,
                         sign_setup(funder.key, signer_set), [alice.key, bob.key])
    receipt = book.executor.settle(check)
"""

from .check_types import (
    Signature, SignerSet, Nonce, RedemptionToken, CardProof, Check, Receipt,
    Merchant, ReplayKind,
)
from .errors import (
    CheckError, InvalidSignature, ThresholdNotMet, DuplicateSigner, SignerMismatch,
    StaleNonce, CardNonceAlreadyUsed, ArrayLengthMismatch, Unauthorized,
    IdAlreadyTaken, NameAlreadyTaken, InvalidAmount, InsufficientBalance, StoreError,
)
from .derive import derive, derive_order_account
from .signatures import SignatureVerifier, sign_digest
from .policy import ThresholdPolicyEngine, PolicyMode, PolicyResult
from .replay import ReplayGuard, RedemptionTokenStore
from .store import Store
from .ledger import TokenLedger
from .events import Event, EventLog
from .executor import TransferExecutor
from .merchant import (
    MerchantRegistry, MerchantOwner, MerchantOwnerFactory, NameRegistry,
    DEFAULT_ADMIN_ROLE, TRANSFER_B2B, TRANSFER_B2C, PERMISSION_B2B, PERMISSION_B2C,
)
from .merchant_wallet import MerchantWallet
from .issuer import create_check, sign_setup, sign_card_nonce, sign_b2b, sign_b2c, new_token_id
from .engine import Checkbook
from .client import RelayerClient, RelayerError

__version__ = "0.1.0"
__all__ = [
    # Types
    "Signature", "SignerSet", "Nonce", "RedemptionToken", "CardProof", "Check",
    "Receipt", "Merchant", "ReplayKind",
    # Errors
    "CheckError", "InvalidSignature", "ThresholdNotMet", "DuplicateSigner",
    "SignerMismatch", "StaleNonce", "CardNonceAlreadyUsed", "ArrayLengthMismatch",
    "Unauthorized", "IdAlreadyTaken", "NameAlreadyTaken", "InvalidAmount",
    "InsufficientBalance", "StoreError",
    # Core
    "derive", "derive_order_account", "SignatureVerifier", "sign_digest",
    "ThresholdPolicyEngine", "PolicyMode", "PolicyResult",
    "ReplayGuard", "RedemptionTokenStore", "Store", "TokenLedger",
    "Event", "EventLog", "TransferExecutor",
    # Merchants
    "MerchantRegistry", "MerchantOwner", "MerchantOwnerFactory", "NameRegistry",
    "MerchantWallet", "DEFAULT_ADMIN_ROLE", "TRANSFER_B2B", "TRANSFER_B2C",
    "PERMISSION_B2B", "PERMISSION_B2C",
    # Issuing
    "create_check", "sign_setup", "sign_card_nonce", "sign_b2b", "sign_b2c", "new_token_id",
    # Services
    "Checkbook", "RelayerClient", "RelayerError",
]

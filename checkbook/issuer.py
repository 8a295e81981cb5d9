"""
checkbook - Issuer Helpers

Client-side construction of signed checks and merchant transfer
authorizations. Nothing here touches the store; the resulting objects are
handed to a relayer (TransferExecutor / MerchantWallet / RelayerClient).

Usage:
    signer_set = SignerSet((alice.address, bob.address), 2)
    setup = sign_setup(funder.key, signer_set)
    check = create_check(token, 100, recipient, Nonce(1), signer_set, setup,
                         [alice.key, bob.key])
"""

import secrets
from typing import List, Optional, Sequence

from .check_types import (
    CardProof, Check, ReplayToken, Signature, SignerSet, normalize_address, normalize_bytes32,
)
from .digests import b2b_digest, b2c_digest, replay_digest, setup_digest
from .signatures import sign_digest


def new_token_id() -> str:
    """Fresh random 32-byte id for a blank check or card nonce."""
    return "0x" + secrets.token_hex(32)


def sign_setup(funder_key: str, signer_set: SignerSet) -> Signature:
    """Funder's signature binding `signer_set` to the account it funds."""
    return sign_digest(funder_key, setup_digest(signer_set))


def sign_card_nonce(card_key: str, nonce: Optional[str] = None) -> CardProof:
    nonce = normalize_bytes32(nonce or new_token_id())
    return CardProof(nonce=nonce, signature=sign_digest(card_key, bytes.fromhex(nonce[2:])))


def create_check(token: str, amount: int, recipient: str, replay: ReplayToken,
                 signer_set: SignerSet, setup_signature: Signature,
                 signer_keys: Sequence[Optional[str]],
                 card_keys: Sequence[Optional[str]] = (),
                 data: str = "") -> Check:
    """
    Build and sign a check.

    Args:
        token: Token address
        amount: Amount in base units
        recipient: Payee address
        replay: Nonce(n) or RedemptionToken(id)
        signer_set: Signer set of the paying account
        setup_signature: Funder's signature from sign_setup()
        signer_keys: Private keys aligned with signer_set.signers (None skips a slot)
        card_keys: Card keys aligned with signer_set.cards (None skips a slot)
        data: Opaque data carried into the receipt

    Returns:
        Signed Check
    """
    token, recipient = normalize_address(token), normalize_address(recipient)
    digest = replay_digest(token, amount, recipient, replay)
    signatures: List[Optional[Signature]] = [
        None if key is None else sign_digest(key, digest) for key in signer_keys
    ]
    card_proofs: List[Optional[CardProof]] = [
        None if key is None else sign_card_nonce(key) for key in card_keys
    ]
    return Check(
        token=token,
        amount=amount,
        recipient=recipient,
        replay=replay,
        signer_set=signer_set,
        setup_signature=setup_signature,
        signatures=signatures,
        card_proofs=card_proofs,
        data=data,
    )


def sign_b2b(key: str, token: str, sender_merchant: str, sender_order_id: str,
             recipient_merchant: str, recipient_order_id: str, amount: int,
             nonce: int) -> Signature:
    return sign_digest(key, b2b_digest(
        normalize_address(token), normalize_address(sender_merchant), sender_order_id,
        normalize_address(recipient_merchant), recipient_order_id, amount, nonce))


def sign_b2c(key: str, token: str, sender_merchant: str, sender_order_id: str,
             recipient: str, amount: int, nonce: int) -> Signature:
    return sign_digest(key, b2c_digest(
        normalize_address(token), normalize_address(sender_merchant), sender_order_id,
        normalize_address(recipient), amount, nonce))

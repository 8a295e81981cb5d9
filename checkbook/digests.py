"""
checkbook - Message Digests

The exact byte strings each party signs. Every digest is signed with the
Ethereum personal-message prefix (see signatures.py).
"""

from web3 import Web3

from .check_types import Check, Nonce, ReplayToken, SignerSet, normalize_bytes32
from .derive import account_salt


def _b32(value: str) -> bytes:
    return Web3.to_bytes(hexstr=normalize_bytes32(value))


def setup_digest(signer_set: SignerSet) -> bytes:
    """Signed by the funder to bind the signer set to the funded account."""
    return account_salt(signer_set)


def nonce_check_digest(token: str, amount: int, recipient: str, nonce: int) -> bytes:
    return bytes(Web3.solidity_keccak(
        ["address", "uint256", "address", "uint256"],
        [token, amount, recipient, nonce],
    ))


def blank_check_digest(token: str, amount: int, recipient: str, token_id: str) -> bytes:
    return bytes(Web3.solidity_keccak(
        ["string", "address", "uint256", "address", "bytes32"],
        ["redeemBlankCheck", token, amount, recipient, _b32(token_id)],
    ))


def replay_digest(token: str, amount: int, recipient: str, replay: ReplayToken) -> bytes:
    if isinstance(replay, Nonce):
        return nonce_check_digest(token, amount, recipient, replay.value)
    return blank_check_digest(token, amount, recipient, replay.token_id)


def check_digest(check: Check) -> bytes:
    return replay_digest(check.token, check.amount, check.recipient, check.replay)


def b2b_digest(token: str, sender_merchant: str, sender_order_id: str,
               recipient_merchant: str, recipient_order_id: str,
               amount: int, nonce: int) -> bytes:
    return bytes(Web3.solidity_keccak(
        ["string", "address", "address", "bytes32", "address", "bytes32", "uint256", "uint256"],
        ["transferB2B", token, sender_merchant, _b32(sender_order_id),
         recipient_merchant, _b32(recipient_order_id), amount, nonce],
    ))


def b2c_digest(token: str, sender_merchant: str, sender_order_id: str,
               recipient: str, amount: int, nonce: int) -> bytes:
    return bytes(Web3.solidity_keccak(
        ["string", "address", "address", "bytes32", "address", "uint256", "uint256"],
        ["transferB2C", token, sender_merchant, _b32(sender_order_id), recipient, amount, nonce],
    ))

"""
checkbook - Address Derivation

Virtual accounts are addressed before they exist. The identifier is a
CREATE2-style address computed from the wallet address, a salt over the
ordered signer set and its threshold vector, and a fixed init code hash:

    salt    = keccak(pad32(signer_0) .. pad32(signer_n) pad32(m) pad32(n) pad32(card_m) pad32(card_n))
    account = keccak(0xff ++ wallet ++ salt ++ init_code_hash)[12:]

Usage:
    from checkbook import SignerSet, derive

    account = derive(SignerSet(("0xA...", "0xB..."), 2), wallet_address)
"""

from typing import Union

from web3 import Web3

from .check_types import SignerSet, normalize_address, normalize_bytes32

ACCOUNT_INIT_CODE_HASH = bytes(Web3.keccak(text="checkbook.VirtualAccount.v1"))


def _pad_address(address: str) -> bytes:
    return bytes(12) + Web3.to_bytes(hexstr=address)


def account_salt(signer_set: SignerSet) -> bytes:
    """Packed keccak over the ordered identities and the threshold vector."""
    signer_set.validate()
    packed = b"".join(_pad_address(a) for a in signer_set.identities)
    packed += b"".join(m.to_bytes(32, "big") for m in signer_set.threshold_vector)
    return bytes(Web3.keccak(packed))


def create2_address(deployer: str, salt: bytes,
                    init_code_hash: bytes = ACCOUNT_INIT_CODE_HASH) -> str:
    raw = Web3.keccak(b"\xff" + Web3.to_bytes(hexstr=normalize_address(deployer))
                      + salt + init_code_hash)
    return Web3.to_checksum_address("0x" + bytes(raw)[12:].hex())


def derive(signer_set: SignerSet, wallet_address: str) -> str:
    """
    Derive the virtual account for a signer set.

    Args:
        signer_set: Ordered signers and threshold (validated here)
        wallet_address: Address of the wallet that controls all accounts

    Returns:
        Checksummed account address
    """
    return create2_address(wallet_address, account_salt(signer_set))


def derive_order_account(merchant_id: str, order_id: Union[str, bytes], wallet_address: str) -> str:
    """
    Per-order account of a merchant: derive([merchant_id], 1) keyed by the order id.

    Keyed by the merchant id rather than its owner, so merchants sharing an
    owner never share an account and an owner change keeps every account.
    """
    merchant_salt = account_salt(SignerSet((merchant_id,), 1))
    order = Web3.to_bytes(hexstr=normalize_bytes32(order_id))
    return create2_address(wallet_address, bytes(Web3.keccak(merchant_salt + order)))

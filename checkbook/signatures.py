"""
checkbook - Signature Verification

Recover signer identities from (v, r, s) signatures over 32-byte digests.
Digests are signed as Ethereum personal messages
("\\x19Ethereum Signed Message:\\n32" + digest), the format every wallet
produces with personal_sign / eth_sign.

Usage:
    from checkbook.signatures import SignatureVerifier, sign_digest

    sig = sign_digest(private_key, digest)
    signer = SignatureVerifier().recover(digest, sig)
"""

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature, ValidationError

from .check_types import ZERO_ADDRESS, Signature
from .errors import InvalidSignature

SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def sign_digest(private_key: str, digest: bytes) -> Signature:
    """Sign a 32-byte digest with the personal-message prefix."""
    signed = Account.sign_message(encode_defunct(primitive=digest), private_key=private_key)
    return Signature(v=signed.v, r=signed.r, s=signed.s)


class SignatureVerifier:
    """Stateless signer recovery."""

    def recover(self, digest: bytes, signature: Signature) -> str:
        """
        Recover the address that signed `digest`.

        Raises:
            InvalidSignature: malformed (v, r, s) or recovery failure
        """
        if signature is None:
            raise InvalidSignature("missing signature")
        if len(digest) != 32:
            raise InvalidSignature(f"digest must be 32 bytes, got {len(digest)}")
        if signature.v not in (27, 28):
            raise InvalidSignature(f"invalid v value: {signature.v}")
        if not (0 < signature.r < SECP256K1_N and 0 < signature.s < SECP256K1_N):
            raise InvalidSignature("r or s out of range")

        try:
            signer = Account.recover_message(
                encode_defunct(primitive=digest),
                vrs=(signature.v, signature.r, signature.s),
            )
        except (BadSignature, ValidationError, ValueError, TypeError) as e:
            raise InvalidSignature(f"recovery failed: {e}")

        if signer == ZERO_ADDRESS:
            raise InvalidSignature("recovered zero address")
        return signer

"""
checkbook - Errors

Every rejection carries a stable `kind` (used by the relayer API and logs)
and a human readable message. A raised CheckError always means the
settlement was aborted with no state change.
"""


class CheckError(Exception):
    """Settlement or registry operation rejected."""
    kind = "CheckError"
    http_status = 400

    def __init__(self, message: str = ""):
        self.message = message or self.kind
        super().__init__(f"{self.kind}: {self.message}")

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class InvalidSignature(CheckError):
    """Signature is malformed or recovery failed."""
    kind = "InvalidSignature"


class ThresholdNotMet(CheckError):
    """Fewer than m distinct valid signers."""
    kind = "ThresholdNotMet"


class DuplicateSigner(CheckError):
    """The same identity was credited twice."""
    kind = "DuplicateSigner"


class SignerMismatch(CheckError):
    """Recovered identity differs from the claimed one."""
    kind = "SignerMismatch"


class StaleNonce(CheckError):
    """Nonce is not exactly stored + 1."""
    kind = "StaleNonce"
    http_status = 409


class CardNonceAlreadyUsed(CheckError):
    """Redemption token or card nonce already consumed."""
    kind = "CardNonceAlreadyUsed"
    http_status = 409


class ArrayLengthMismatch(CheckError):
    """Malformed input shape (lengths, empty lists, bad threshold)."""
    kind = "ArrayLengthMismatch"


class Unauthorized(CheckError):
    kind = "Unauthorized"
    http_status = 403


class IdAlreadyTaken(CheckError):
    kind = "IdAlreadyTaken"
    http_status = 409


class NameAlreadyTaken(CheckError):
    kind = "NameAlreadyTaken"
    http_status = 409


class InvalidAmount(CheckError):
    """Amount outside 1 .. 2**256 - 1."""
    kind = "InvalidAmount"


class InsufficientBalance(CheckError):
    """Ledger cannot cover the debit (balance or allowance too low)."""
    kind = "InsufficientBalance"


class StoreError(CheckError):
    """Persistent store could not be read, or its checksum does not match."""
    kind = "StoreError"
    http_status = 500


ERROR_KINDS = {
    cls.kind: cls for cls in (
        InvalidSignature, ThresholdNotMet, DuplicateSigner, SignerMismatch,
        StaleNonce, CardNonceAlreadyUsed, ArrayLengthMismatch, Unauthorized,
        IdAlreadyTaken, NameAlreadyTaken, InvalidAmount, InsufficientBalance,
        StoreError,
    )
}

"""
checkbook - Data Types

Signer sets, signatures, checks and receipts.

A check is an off-band signed instruction releasing value from a virtual
account. It carries one of two replay tokens:
  - Nonce:            per-account counter, must be exactly stored + 1
  - RedemptionToken:  single-use id chosen by the issuer (blank check)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union
import time

from web3 import Web3

from .errors import ArrayLengthMismatch, DuplicateSigner, InvalidAmount, InvalidSignature

MAX_UINT256 = 2 ** 256 - 1
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_BYTES32 = "0x" + "00" * 32


class ReplayKind(Enum):
    """Replay protection scheme carried by a check"""
    NONCE = "nonce"
    REDEMPTION = "redemption"


# ═══════════════════════════════════════════════════════════════════════════
# NORMALIZATION
# ═══════════════════════════════════════════════════════════════════════════

def normalize_address(address: str) -> str:
    """Checksum an address, rejecting anything that is not 20 bytes of hex."""
    if not isinstance(address, str) or not Web3.is_address(address):
        raise ArrayLengthMismatch(f"invalid address: {address!r}")
    return Web3.to_checksum_address(address)


def normalize_bytes32(value: Union[str, bytes]) -> str:
    """Return a 0x-prefixed lowercase 32-byte hex string."""
    try:
        raw = value if isinstance(value, bytes) else Web3.to_bytes(hexstr=value)
    except (TypeError, ValueError):
        raise ArrayLengthMismatch(f"invalid bytes32: {value!r}")
    if len(raw) != 32:
        raise ArrayLengthMismatch(f"bytes32 expected, got {len(raw)} bytes")
    return "0x" + raw.hex()


def validate_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"amount must be an integer, got {amount!r}")
    if amount <= 0 or amount > MAX_UINT256:
        raise InvalidAmount(f"amount out of range: {amount}")
    return amount


# ═══════════════════════════════════════════════════════════════════════════
# SIGNATURES
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Signature:
    """
    ECDSA signature split into (v, r, s).

    v is 27 or 28. A compact 65-byte hex signature (r || s || v) is accepted
    by from_hex(); v values 0/1 are lifted to 27/28.
    """
    v: int
    r: int
    s: int

    @classmethod
    def from_hex(cls, signature: str) -> "Signature":
        try:
            raw = Web3.to_bytes(hexstr=signature)
        except (TypeError, ValueError):
            raise InvalidSignature("signature is not hex")
        if len(raw) != 65:
            raise InvalidSignature(f"signature must be 65 bytes, got {len(raw)}")
        v = raw[64]
        if v < 27:
            v += 27
        return cls(v=v, r=int.from_bytes(raw[:32], "big"), s=int.from_bytes(raw[32:64], "big"))

    def to_hex(self) -> str:
        return "0x" + (self.r.to_bytes(32, "big") + self.s.to_bytes(32, "big")
                       + bytes([self.v % 256])).hex()

    def to_dict(self) -> dict:
        return {"v": self.v, "r": f"0x{self.r:064x}", "s": f"0x{self.s:064x}"}

    @classmethod
    def from_dict(cls, data: Union[dict, str]) -> "Signature":
        """Accept {"v", "r", "s"} or a compact hex string."""
        if isinstance(data, str):
            return cls.from_hex(data)
        try:
            r, s = data["r"], data["s"]
            return cls(
                v=int(data["v"]),
                r=int(r, 16) if isinstance(r, str) else int(r),
                s=int(s, 16) if isinstance(s, str) else int(s),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidSignature(f"malformed signature: {e}")


def _optional_signatures(items: list) -> List[Optional[Signature]]:
    return [None if item is None else Signature.from_dict(item) for item in items]


# ═══════════════════════════════════════════════════════════════════════════
# SIGNER SETS
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SignerSet:
    """
    Ordered signer identities and an m-of-N threshold.

    Optionally carries second-factor cards with their own threshold. Order
    matters: it feeds the account derivation and positional matching.
    """
    signers: Tuple[str, ...]
    threshold: int
    cards: Tuple[str, ...] = ()
    card_threshold: int = 0

    def __post_init__(self):
        object.__setattr__(self, "signers", tuple(normalize_address(a) for a in self.signers))
        object.__setattr__(self, "cards", tuple(normalize_address(a) for a in self.cards))

    def validate(self) -> "SignerSet":
        """Reject malformed sets before anything is derived from them."""
        if not self.signers:
            raise ArrayLengthMismatch("signer list is empty")
        if not 1 <= self.threshold <= len(self.signers):
            raise ArrayLengthMismatch(
                f"threshold {self.threshold} outside 1..{len(self.signers)}")
        if self.cards and not 1 <= self.card_threshold <= len(self.cards):
            raise ArrayLengthMismatch(
                f"card threshold {self.card_threshold} outside 1..{len(self.cards)}")
        if not self.cards and self.card_threshold:
            raise ArrayLengthMismatch("card threshold given without cards")
        identities = self.signers + self.cards
        if len(set(identities)) != len(identities):
            raise DuplicateSigner("signer list contains the same identity twice")
        return self

    @property
    def identities(self) -> Tuple[str, ...]:
        """Signers followed by cards, in derivation order."""
        return self.signers + self.cards

    @property
    def threshold_vector(self) -> List[int]:
        """[m, n, card m, card n]"""
        return [self.threshold, len(self.signers), self.card_threshold, len(self.cards)]

    def to_dict(self) -> dict:
        data = {"signers": list(self.signers), "threshold": self.threshold}
        if self.cards:
            data["cards"] = list(self.cards)
            data["card_threshold"] = self.card_threshold
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SignerSet":
        try:
            return cls(
                signers=tuple(data["signers"]),
                threshold=int(data["threshold"]),
                cards=tuple(data.get("cards", ())),
                card_threshold=int(data.get("card_threshold", 0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ArrayLengthMismatch(f"malformed signer set: {e}")


# ═══════════════════════════════════════════════════════════════════════════
# REPLAY TOKENS
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Nonce:
    value: int
    kind = ReplayKind.NONCE

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "nonce": self.value}


@dataclass(frozen=True)
class RedemptionToken:
    token_id: str
    kind = ReplayKind.REDEMPTION

    def __post_init__(self):
        object.__setattr__(self, "token_id", normalize_bytes32(self.token_id))

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "token_id": self.token_id}


ReplayToken = Union[Nonce, RedemptionToken]


def replay_from_dict(data: dict) -> ReplayToken:
    kind = ReplayKind(data.get("kind", "nonce"))
    if kind == ReplayKind.NONCE:
        return Nonce(int(data["nonce"]))
    return RedemptionToken(data["token_id"])


@dataclass(frozen=True)
class CardProof:
    """A card's signature over a one-time card nonce."""
    nonce: str
    signature: Signature

    def __post_init__(self):
        object.__setattr__(self, "nonce", normalize_bytes32(self.nonce))

    def to_dict(self) -> dict:
        return {"nonce": self.nonce, "signature": self.signature.to_dict()}

    @classmethod
    def from_dict(cls, data: dict) -> "CardProof":
        return cls(nonce=data["nonce"], signature=Signature.from_dict(data["signature"]))


# ═══════════════════════════════════════════════════════════════════════════
# CHECKS & RECEIPTS
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class Check:
    """
    Signed instruction to move `amount` of `token` from the virtual account
    of `signer_set` to `recipient`.

    signatures[i] must recover to signer_set.signers[i]; None skips a slot.
    card_proofs works the same way against signer_set.cards.
    """
    token: str
    amount: int
    recipient: str
    replay: ReplayToken
    signer_set: SignerSet
    setup_signature: Signature
    signatures: List[Optional[Signature]] = field(default_factory=list)
    card_proofs: List[Optional[CardProof]] = field(default_factory=list)
    data: str = ""

    def __post_init__(self):
        self.token = normalize_address(self.token)
        self.recipient = normalize_address(self.recipient)

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "amount": str(self.amount),
            "recipient": self.recipient,
            "replay": self.replay.to_dict(),
            "signer_set": self.signer_set.to_dict(),
            "setup_signature": self.setup_signature.to_dict(),
            "signatures": [None if s is None else s.to_dict() for s in self.signatures],
            "card_proofs": [None if p is None else p.to_dict() for p in self.card_proofs],
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Check":
        """Parse a JSON payload. Amounts may be given as int or decimal string."""
        try:
            amount = int(data["amount"])
            return cls(
                token=data["token"],
                amount=amount,
                recipient=data["recipient"],
                replay=replay_from_dict(data["replay"]),
                signer_set=SignerSet.from_dict(data["signer_set"]),
                setup_signature=Signature.from_dict(data["setup_signature"]),
                signatures=_optional_signatures(data.get("signatures", [])),
                card_proofs=[None if p is None else CardProof.from_dict(p)
                             for p in data.get("card_proofs", [])],
                data=data.get("data", ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ArrayLengthMismatch(f"malformed check: {e}")


@dataclass
class Receipt:
    """Result of a settled check."""
    account: str
    token: str
    recipient: str
    amount: int
    replay_kind: ReplayKind
    replay_state: Union[int, str]
    data: str = ""
    settled_ts: int = field(default_factory=lambda: int(time.time()))

    def to_dict(self) -> dict:
        return {
            "account": self.account,
            "token": self.token,
            "recipient": self.recipient,
            "amount": str(self.amount),
            "replay_kind": self.replay_kind.value,
            "replay_state": self.replay_state,
            "data": self.data,
            "settled_ts": self.settled_ts,
        }


@dataclass
class Merchant:
    """Registry entry: merchant id -> owner identity + content hash."""
    merchant_id: str
    owner: str
    content_hash: str = ZERO_BYTES32

    def to_dict(self) -> dict:
        return {
            "merchant_id": self.merchant_id,
            "owner": self.owner,
            "content_hash": self.content_hash,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Merchant":
        return cls(
            merchant_id=data["merchant_id"],
            owner=data["owner"],
            content_hash=data.get("content_hash", ZERO_BYTES32),
        )

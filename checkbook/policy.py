"""
checkbook - Threshold Policy

M-of-N verification of signatures against a claimed, ordered signer list.

Matching modes:
  - POSITIONAL (default): signatures[i] must recover to signers[i].
    None at a position skips that signer.
  - UNORDERED: each signature must recover to some member of the list.

POSITIONAL rejects compact signature lists, where signatures of a subset of
signers are packed into the leading slots (keys 2 and 3 of [1, 2, 3] in slots
0 and 1). Deployments whose issuers build such lists must run UNORDERED
(CHECKBOOK_POLICY_MODE=unordered) or pad skipped slots with None.

In both modes an identity is credited at most once, and at least m distinct
identities must be recovered.

The 1-of-1 and 2-of-2 shapes take a shorter path with the same outcome as
the general loop, including which error is raised first.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from .check_types import CardProof, Signature
from .errors import ArrayLengthMismatch, DuplicateSigner, SignerMismatch, ThresholdNotMet
from .signatures import SignatureVerifier


class PolicyMode(Enum):
    POSITIONAL = "positional"
    UNORDERED = "unordered"


@dataclass
class PolicyResult:
    matched_count: int
    distinct_signers: List[str] = field(default_factory=list)


class ThresholdPolicyEngine:
    """
    Verifies that signatures meet an m-of-N threshold.

    Usage:
        engine = ThresholdPolicyEngine()
        result = engine.verify(signers, 2, digest, [sig_a, sig_b])
    """

    def __init__(self, verifier: Optional[SignatureVerifier] = None,
                 mode: PolicyMode = PolicyMode.POSITIONAL,
                 fast_paths: bool = True):
        self.verifier = verifier or SignatureVerifier()
        self.mode = mode
        self.fast_paths = fast_paths

    def verify(self, claimed_signers: Sequence[str], m: int, digest: bytes,
               signatures: Sequence[Optional[Signature]]) -> PolicyResult:
        """
        Verify signatures over a single digest.

        Args:
            claimed_signers: Ordered signer identities
            m: Required number of distinct signers
            digest: 32-byte message digest every signature covers
            signatures: Signatures aligned with claimed_signers

        Returns:
            PolicyResult with the credited identities

        Raises:
            ArrayLengthMismatch, InvalidSignature, SignerMismatch,
            DuplicateSigner, ThresholdNotMet
        """
        signers = list(claimed_signers)
        self._check_shape(signers, m, signatures)

        complete = len(signatures) == len(signers) and None not in signatures
        if self.fast_paths and complete:
            if m == 1 and len(signers) == 1:
                return self._verify_1of1(signers, digest, signatures)
            if m == 2 and len(signers) == 2:
                return self._verify_2of2(signers, digest, signatures)
        return self._verify_general(signers, m, [digest] * len(signatures), signatures)

    def verify_cards(self, cards: Sequence[str], m: int,
                     proofs: Sequence[Optional[CardProof]]) -> PolicyResult:
        """Verify card proofs, each signature covering its own card nonce."""
        cards = list(cards)
        self._check_shape(cards, m, proofs)
        digests = [None if p is None else bytes.fromhex(p.nonce[2:]) for p in proofs]
        signatures = [None if p is None else p.signature for p in proofs]
        return self._verify_general(cards, m, digests, signatures)

    # ═══════════════════════════════════════════════════════════════════════
    # INTERNALS
    # ═══════════════════════════════════════════════════════════════════════

    @staticmethod
    def _check_shape(signers: List[str], m: int, signatures: Sequence) -> None:
        if not signers:
            raise ArrayLengthMismatch("signer list is empty")
        if not 1 <= m <= len(signers):
            raise ArrayLengthMismatch(f"threshold {m} outside 1..{len(signers)}")
        if len(signatures) > len(signers):
            raise ArrayLengthMismatch(
                f"{len(signatures)} signatures for {len(signers)} signers")

    def _credit(self, signers: List[str], position: int, recovered: str,
                seen: List[str]) -> None:
        if recovered in seen:
            raise DuplicateSigner(f"{recovered} already counted")
        if self.mode == PolicyMode.POSITIONAL:
            if recovered != signers[position]:
                raise SignerMismatch(f"position {position}: expected {signers[position]}, got {recovered}")
        elif recovered not in signers:
            raise SignerMismatch(f"{recovered} is not a signer")
        seen.append(recovered)

    def _verify_general(self, signers, m, digests, signatures) -> PolicyResult:
        seen: List[str] = []
        for position, signature in enumerate(signatures):
            if signature is None:
                continue
            recovered = self.verifier.recover(digests[position], signature)
            self._credit(signers, position, recovered, seen)
        if len(seen) < m:
            raise ThresholdNotMet(f"{len(seen)} of {m} required signers")
        return PolicyResult(matched_count=len(seen), distinct_signers=seen)

    def _verify_1of1(self, signers, digest, signatures) -> PolicyResult:
        recovered = self.verifier.recover(digest, signatures[0])
        if recovered != signers[0]:
            raise SignerMismatch(f"position 0: expected {signers[0]}, got {recovered}")
        return PolicyResult(matched_count=1, distinct_signers=[recovered])

    def _verify_2of2(self, signers, digest, signatures) -> PolicyResult:
        seen: List[str] = []
        first = self.verifier.recover(digest, signatures[0])
        self._credit(signers, 0, first, seen)
        second = self.verifier.recover(digest, signatures[1])
        self._credit(signers, 1, second, seen)
        return PolicyResult(matched_count=2, distinct_signers=seen)

"""
Server-side proof-of-work verification.

Check chain, each step short-circuits:
1. Signature (signed token read)
2. Expiry
3. Context binding (when an expected context is supplied)
4. Replay (jti already used)
5. Proof: SHA-256(token || nonce) < target
6. Claim jti in the replay store

Only step 6 writes state and only on success, so a client can retry after
a transient failure such as corrupted nonce digits.
"""

import time
from collections.abc import Callable, Mapping

import structlog

from powgate.exceptions import (
    ContextMismatchError,
    ExpiryError,
    InvalidInputError,
    PowError,
    ProofError,
    ReplayError,
    SignatureError,
)
from powgate.outcome import Outcome
from powgate.schemas.challenge import Solution
from powgate.services.proof import meets_target, proof_digest
from powgate.services.replay_store import ReplayStore
from powgate.services.threshold import target_from_hex, target_to_bytes
from powgate.services.token_codec import ChallengeCodec, is_reserved_claim

logger = structlog.get_logger()


def _values_equal(expected, actual) -> bool:
    # True == 1 in Python; a boolean only matches a boolean
    if isinstance(expected, bool) or isinstance(actual, bool):
        return type(expected) is type(actual) and expected == actual
    return expected == actual


def validate_context(claims: dict, expected_context: Mapping) -> None:
    """
    Check that every expected context value is present in the signed claims.

    Reserved claim names are skipped; they are never caller context.
    """
    for key, expected in expected_context.items():
        if is_reserved_claim(key):
            continue

        if key not in claims:
            raise ContextMismatchError(
                f"Context validation failed: missing field '{key}'", key=key
            )

        actual = claims[key]
        if not _values_equal(expected, actual):
            raise ContextMismatchError(
                f"Context validation failed: field '{key}' mismatch "
                f"(expected={expected!r}, actual={actual!r})",
                key=key,
            )


class Verifier:
    def __init__(
        self,
        secret: str | bytes,
        replay_store: ReplayStore | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            secret: Signing secret, must match the generator's
            replay_store: Replay protection backend. Without one a solved
                token verifies any number of times until it expires.
            clock: Source of epoch seconds
        """
        self._codec = ChallengeCodec(secret)
        self._replay_store = replay_store
        self._clock = clock

        if replay_store is None:
            logger.warning("pow_verifier_without_replay_store")

    def verify(self, solution: Solution, expected_context: Mapping | None = None) -> bool:
        """
        Verify a solution, returning True or raising the PowError that failed.

        Raises:
            InvalidInputError, FormatError, SignatureError, ExpiryError,
            ContextMismatchError, ReplayError, ProofError
        """
        token = solution.token
        nonce = solution.nonce
        if not isinstance(token, str) or not token:
            raise InvalidInputError("Token must be a non-empty string")
        if isinstance(nonce, bool) or not isinstance(nonce, int) or nonce < 0:
            raise InvalidInputError("Nonce must be a non-negative integer")

        # 1. Signature
        try:
            claims = self._codec.decode(token)
        except SignatureError:
            logger.warning("pow_signature_invalid")
            raise

        jti = claims["jti"]
        expires_at = claims["exp"]

        # 2. Expiry
        now = int(self._clock())
        if now > expires_at:
            logger.warning("pow_challenge_expired", jti=jti, exp=expires_at, now=now)
            raise ExpiryError("Challenge has expired")

        # 3. Context binding
        if expected_context:
            try:
                validate_context(claims, expected_context)
            except ContextMismatchError as e:
                logger.warning("pow_context_mismatch", jti=jti, key=e.key)
                raise

        # 4. Replay
        if self._replay_store is not None and self._replay_store.is_used(jti):
            logger.warning("pow_replay_detected", jti=jti)
            raise ReplayError("Challenge has already been used", jti=jti)

        # 5. Proof
        target_bytes = target_to_bytes(target_from_hex(claims["tgt"]))
        digest = proof_digest(token, nonce)
        if not meets_target(digest, target_bytes):
            logger.info("pow_proof_rejected", jti=jti, nonce=nonce)
            raise ProofError("Insufficient proof of work")

        # 6. Claim; loses only if a concurrent verification got here first
        if self._replay_store is not None and not self._replay_store.claim(jti, expires_at):
            logger.warning("pow_replay_detected", jti=jti, concurrent=True)
            raise ReplayError("Challenge has already been used", jti=jti)

        logger.info("pow_verified", jti=jti, nonce=nonce)
        return True

    def check(self, solution: Solution, expected_context: Mapping | None = None) -> Outcome[bool]:
        """Like verify(), but returns an Outcome instead of raising PowError."""
        try:
            return Outcome.success(self.verify(solution, expected_context))
        except PowError as e:
            return Outcome.failure(e)

"""Error kinds raised by the challenge protocol.

Every failure is surfaced to the caller. Nothing retries internally and no
replay record is written on any failure path.
"""

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    FORMAT = "format"
    SIGNATURE = "signature"
    EXPIRY = "expiry"
    CONTEXT_MISMATCH = "context_mismatch"
    REPLAY = "replay"
    PROOF = "proof"
    EXHAUSTION = "exhaustion"
    GENERATION = "generation"


class PowError(Exception):
    """Base class for all proof-of-work errors."""

    kind: ErrorKind


class InvalidInputError(PowError, ValueError):
    """Malformed parameters supplied by the caller."""

    kind = ErrorKind.INVALID_INPUT


class FormatError(PowError):
    """Token does not parse as a challenge token."""

    kind = ErrorKind.FORMAT


class SignatureError(PowError):
    """Token signature did not verify (tampering or wrong key)."""

    kind = ErrorKind.SIGNATURE


class ExpiryError(PowError):
    """Challenge expired; the client should request a new one."""

    kind = ErrorKind.EXPIRY


class ContextMismatchError(PowError):
    """Expected context field is absent from or differs in the signed token."""

    kind = ErrorKind.CONTEXT_MISMATCH

    def __init__(self, message: str, key: str):
        super().__init__(message)
        self.key = key


class ReplayError(PowError):
    """Challenge id has already been redeemed."""

    kind = ErrorKind.REPLAY

    def __init__(self, message: str, jti: str):
        super().__init__(message)
        self.jti = jti


class ProofError(PowError):
    """Hash of token and nonce does not fall below the target."""

    kind = ErrorKind.PROOF


class ExhaustionError(PowError):
    """Solver ran out of attempts without finding a nonce."""

    kind = ErrorKind.EXHAUSTION

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class ChallengeGenerationError(PowError):
    """Signing the challenge token failed."""

    kind = ErrorKind.GENERATION

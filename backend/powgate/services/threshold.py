"""
Difficulty factor to 256-bit target conversion.

Target = floor((2^256 - 1) / difficulty_factor)

A SHA-256 digest passes when, read as a big-endian unsigned integer, it is
strictly less than the target. The division is carried out on exact rationals
because a float cannot hold the 256-bit numerator.
"""

import math
from decimal import Decimal, InvalidOperation
from fractions import Fraction

from powgate.exceptions import FormatError, InvalidInputError

TARGET_BITS = 256
TARGET_BYTES = TARGET_BITS // 8
TARGET_HEX_LENGTH = TARGET_BYTES * 2
MAX_TARGET = (1 << TARGET_BITS) - 1
HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


def _as_fraction(difficulty_factor) -> Fraction:
    if isinstance(difficulty_factor, bool):
        raise InvalidInputError("Difficulty factor must be a number, not a boolean")

    if isinstance(difficulty_factor, float) and not math.isfinite(difficulty_factor):
        raise InvalidInputError(f"Difficulty factor must be finite, got {difficulty_factor}")

    if isinstance(difficulty_factor, Decimal) and not difficulty_factor.is_finite():
        raise InvalidInputError(f"Difficulty factor must be finite, got {difficulty_factor}")

    try:
        return Fraction(difficulty_factor)
    except (TypeError, ValueError, InvalidOperation, OverflowError) as e:
        raise InvalidInputError(f"Invalid difficulty factor: {difficulty_factor!r}") from e


def compute_target(difficulty_factor) -> int:
    """
    Compute the target threshold for a difficulty factor.

    Accepts int, float, Decimal, Fraction or a decimal string. A float
    contributes its exact binary value; strings and Decimals their exact
    decimal value.

    Raises:
        InvalidInputError: if the factor is below 1.0 or not a finite number.
    """
    factor = _as_fraction(difficulty_factor)
    if factor < 1:
        raise InvalidInputError(f"Difficulty factor must be >= 1.0, got {difficulty_factor}")

    # floor(MAX / (n / d)) == floor(MAX * d / n)
    return (MAX_TARGET * factor.denominator) // factor.numerator


def expected_attempts(difficulty_factor) -> float:
    """Mean number of hashes a solver needs for this difficulty."""
    target = compute_target(difficulty_factor)
    return float(Fraction(1 << TARGET_BITS, target + 1))


def target_to_bytes(target: int) -> bytes:
    """Encode a target as 32 big-endian bytes, keeping only the low 256 bits."""
    if target < 0:
        raise InvalidInputError("Target must be non-negative")
    return (target & MAX_TARGET).to_bytes(TARGET_BYTES, "big")


def target_to_hex(target: int) -> str:
    """Encode a target as 64 lowercase hex characters."""
    return target_to_bytes(target).hex()


def target_from_hex(target_hex) -> int:
    """
    Parse the 64-character hex form of a target.

    Raises:
        FormatError: if the value is not exactly 64 hex characters or is zero.
    """
    if not isinstance(target_hex, str) or len(target_hex) != TARGET_HEX_LENGTH:
        raise FormatError(f"Target must be {TARGET_HEX_LENGTH} hex characters")

    # int() alone would also accept "0x", "_" and whitespace
    if any(c not in HEX_DIGITS for c in target_hex):
        raise FormatError("Target is not valid hex")

    target = int(target_hex, 16)
    if target == 0:
        raise FormatError("Target must be greater than zero")

    return target

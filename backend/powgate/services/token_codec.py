"""
Signed challenge token encoding.

Tokens are HS256 JWS compact strings (header.payload.signature) produced with
PyJWT. Two read paths exist:

- decode_unverified / read_target_unverified: no signature check. Clients use
  it to learn the target. Never base a server-side trust decision on it, since
  anyone can forge an unsigned payload.
- ChallengeCodec.decode / read: signature is verified before any claim is
  returned.
"""

import json

import jwt
from jwt.utils import base64url_decode, base64url_encode
from pydantic import ValidationError

from powgate.exceptions import FormatError, InvalidInputError, SignatureError
from powgate.schemas.challenge import Challenge
from powgate.services.threshold import HEX_DIGITS, target_from_hex, target_to_bytes

ALGORITHM = "HS256"
MIN_SECRET_BYTES = 32  # 256 bits
TOKEN_SEGMENTS = 3
SALT_HEX_LENGTH = 32

# Claims the protocol owns; caller context may never set them
RESERVED_CLAIMS = frozenset({"iat", "exp", "jti", "salt", "tgt", "iss", "sub", "aud", "nbf"})
REQUIRED_CLAIMS = ("iat", "exp", "jti", "salt", "tgt")


def is_reserved_claim(name: str) -> bool:
    return name in RESERVED_CLAIMS


def secret_to_key(secret: str | bytes) -> bytes:
    """Normalize a signing secret, enforcing the 256-bit minimum."""
    if isinstance(secret, str):
        secret = secret.encode()
    if not isinstance(secret, bytes):
        raise InvalidInputError("Secret key must be str or bytes")
    if len(secret) < MIN_SECRET_BYTES:
        raise InvalidInputError(
            f"Secret key must be at least 256 bits ({MIN_SECRET_BYTES} bytes)"
        )
    return secret


def _check_structure(token) -> None:
    if not isinstance(token, str) or not token:
        raise InvalidInputError("Token must be a non-empty string")
    # PyJWT's base64 decoding skips stray characters, so count segments first
    if token.count(".") != TOKEN_SEGMENTS - 1:
        raise FormatError(f"Token must have {TOKEN_SEGMENTS} dot-separated segments")


def _check_header(segment: str) -> None:
    try:
        header = json.loads(base64url_decode(segment))
    except ValueError as e:
        raise FormatError(f"Malformed token header: {e}") from e
    if not isinstance(header, dict):
        raise FormatError("Token header must be a JSON object")


def _is_canonical(segment: str) -> bool:
    """True when the segment is the exact base64url encoding of its bytes."""
    try:
        return base64url_encode(base64url_decode(segment)).decode() == segment
    except ValueError:
        return False


def decode_unverified(token: str) -> dict:
    """Parse token claims without checking the signature."""
    _check_structure(token)
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        raise FormatError(f"Malformed challenge token: {e}") from e


def read_target_unverified(token: str) -> bytes:
    """Extract the 32-byte target from a token without checking the signature."""
    claims = decode_unverified(token)
    if "tgt" not in claims:
        raise FormatError("Missing 'tgt' in token payload")
    return target_to_bytes(target_from_hex(claims["tgt"]))


def _validate_claims(claims: dict) -> None:
    for name in ("iat", "exp"):
        value = claims[name]
        if isinstance(value, bool) or not isinstance(value, int):
            raise FormatError(f"Claim '{name}' must be an integer")

    if claims["exp"] <= claims["iat"]:
        raise FormatError("Claim 'exp' must be after 'iat'")

    if not isinstance(claims["jti"], str) or not claims["jti"]:
        raise FormatError("Claim 'jti' must be a non-empty string")

    salt = claims["salt"]
    if (
        not isinstance(salt, str)
        or len(salt) != SALT_HEX_LENGTH
        or any(c not in HEX_DIGITS for c in salt)
    ):
        raise FormatError(f"Claim 'salt' must be {SALT_HEX_LENGTH} hex characters")

    target_from_hex(claims["tgt"])


class ChallengeCodec:
    """Signs and verifies challenge tokens with a shared HMAC secret."""

    def __init__(self, secret: str | bytes):
        self._key = secret_to_key(secret)

    def encode(self, claims: dict) -> str:
        """Sign claims into a compact token. PyJWT errors propagate."""
        return jwt.encode(claims, self._key, algorithm=ALGORITHM)

    def decode(self, token: str) -> dict:
        """
        Verify the signature and return the token claims.

        Expiry is deliberately not checked here so callers can tell a
        signature failure, a format failure and an expired challenge apart.

        Raises:
            InvalidInputError: token is empty or not a string
            FormatError: token is structurally invalid or misses a claim
            SignatureError: signature does not match
        """
        _check_structure(token)
        header, payload, signature = token.split(".")
        _check_header(header)
        # Any edit to the signed segments is a signature failure, even one
        # that breaks their base64 padding
        if not (_is_canonical(payload) and _is_canonical(signature)):
            raise SignatureError("Invalid token signature")

        try:
            claims = jwt.decode(
                token,
                self._key,
                algorithms=[ALGORITHM],
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": list(REQUIRED_CLAIMS),
                },
            )
        except jwt.InvalidSignatureError as e:
            # InvalidSignatureError subclasses DecodeError, so it must come first
            raise SignatureError("Invalid token signature") from e
        except jwt.InvalidTokenError as e:
            raise FormatError(f"Malformed challenge token: {e}") from e

        _validate_claims(claims)
        return claims

    def read(self, token: str) -> Challenge:
        """Verify a token and rebuild the Challenge it encodes."""
        claims = self.decode(token)
        context = {k: v for k, v in claims.items() if not is_reserved_claim(k)}
        try:
            return Challenge(
                issued_at=claims["iat"],
                expires_at=claims["exp"],
                id=claims["jti"],
                salt=claims["salt"],
                target_hex=claims["tgt"],
                context=context,
                token=token,
            )
        except ValidationError as e:
            raise FormatError(f"Invalid challenge claims: {e}") from e

import hashlib


def proof_input(token: str, nonce: int) -> bytes:
    """Proof preimage: token || decimal nonce, UTF-8 encoded."""
    return f"{token}{nonce}".encode()


def proof_digest(token: str, nonce: int) -> bytes:
    return hashlib.sha256(proof_input(token, nonce)).digest()


def meets_target(digest: bytes, target_bytes: bytes) -> bool:
    """
    Check digest < target for two 32-byte big-endian values.

    Lexicographic bytes comparison equals numeric comparison at fixed width,
    so no big-integer conversion happens on the hot path.
    """
    return digest < target_bytes

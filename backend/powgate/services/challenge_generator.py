import math
import secrets
import time
import uuid
from collections.abc import Callable, Mapping

import jwt
import structlog

from powgate.exceptions import ChallengeGenerationError, InvalidInputError
from powgate.schemas.challenge import Challenge
from powgate.services.threshold import compute_target, target_to_hex
from powgate.services.token_codec import ChallengeCodec, is_reserved_claim

DEFAULT_TTL_SECONDS = 300  # 5 minutes
SALT_BYTES = 16

logger = structlog.get_logger()


def _check_context(context: Mapping) -> None:
    for key, value in context.items():
        if not isinstance(key, str):
            raise InvalidInputError(f"Context keys must be strings, got {key!r}")
        if not isinstance(value, (str, int, float, bool)):
            raise InvalidInputError(
                f"Context value for '{key}' must be a string, number or boolean"
            )
        if isinstance(value, float) and not math.isfinite(value):
            raise InvalidInputError(f"Context value for '{key}' must be finite, got {value}")


class ChallengeGenerator:
    """
    Issues signed proof-of-work challenges.

    Holds only configuration, so one instance can serve concurrent callers.
    """

    def __init__(
        self,
        secret: str | bytes,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int):
            raise InvalidInputError("TTL must be an integer number of seconds")
        if ttl_seconds <= 0:
            raise InvalidInputError("TTL must be a positive number of seconds")

        self._codec = ChallengeCodec(secret)
        self._ttl_seconds = ttl_seconds
        self._clock = clock

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def generate(self, difficulty_factor, context: Mapping | None = None) -> Challenge:
        """
        Generate a new challenge.

        Args:
            difficulty_factor: >= 1.0; expected solver work grows linearly with it
                - 100: instant
                - 100_000: well under a second
                - 10_000_000: seconds
            context: Optional business values bound into the signed token, e.g.
                user id or API path. Keys that collide with reserved claims are
                dropped, never rejected.

        Raises:
            InvalidInputError: invalid difficulty or context
            ChallengeGenerationError: signing failed
        """
        target = compute_target(difficulty_factor)
        target_hex = target_to_hex(target)

        context = dict(context or {})
        _check_context(context)
        dropped = sorted(k for k in context if is_reserved_claim(k))
        if dropped:
            logger.debug("challenge_context_reserved_dropped", keys=dropped)
        context = {k: v for k, v in context.items() if not is_reserved_claim(k)}

        now = self._clock()
        issued_at = int(now)
        expires_at = int(now + self._ttl_seconds)
        jti = str(uuid.uuid4())
        salt = secrets.token_hex(SALT_BYTES)

        # Context first so the protocol claims always win
        claims = {
            **context,
            "iat": issued_at,
            "exp": expires_at,
            "jti": jti,
            "salt": salt,
            "tgt": target_hex,
        }

        try:
            token = self._codec.encode(claims)
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            raise ChallengeGenerationError("Failed to sign PoW challenge") from e

        logger.info(
            "challenge_generated",
            jti=jti,
            difficulty=difficulty_factor,
            target_prefix=target_hex[:16],
            context_keys=sorted(context),
        )

        return Challenge(
            issued_at=issued_at,
            expires_at=expires_at,
            id=jti,
            salt=salt,
            target_hex=target_hex,
            context=context,
            token=token,
        )

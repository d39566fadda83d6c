from functools import lru_cache

import structlog
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from powgate.config import settings
from powgate.database import get_db
from powgate.middleware.rate_limit import limiter
from powgate.schemas.challenge import (
    ChallengeCreate,
    ChallengeResponse,
    Solution,
    SolutionSubmit,
    VerificationResponse,
)
from powgate.services.challenge_generator import ChallengeGenerator
from powgate.services.sql_replay_store import SqlReplayStore
from powgate.services.token_codec import decode_unverified
from powgate.services.verifier import Verifier

router = APIRouter()
logger = structlog.get_logger()


@lru_cache
def get_generator() -> ChallengeGenerator:
    return ChallengeGenerator(
        settings.pow_secret_key,
        ttl_seconds=settings.pow_challenge_ttl_seconds,
    )


def get_verifier(db: Session = Depends(get_db)) -> Verifier:
    return Verifier(settings.pow_secret_key, replay_store=SqlReplayStore(db))


@router.post("/challenges", response_model=ChallengeResponse, status_code=201)
@limiter.limit(settings.rate_limit_challenges)
async def create_challenge(
    request: Request,
    challenge_data: ChallengeCreate,
    generator: ChallengeGenerator = Depends(get_generator),
):
    """
    Issue a signed proof-of-work challenge.

    The client must solve it before calling a protected operation. Nothing is
    stored server-side until a solution is verified.
    """
    difficulty = challenge_data.difficulty_factor or settings.pow_difficulty_factor
    difficulty = max(difficulty, settings.pow_min_difficulty_factor)

    challenge = generator.generate(difficulty, context=challenge_data.context)

    return ChallengeResponse(
        token=challenge.token,
        challenge_id=challenge.id,
        issued_at=challenge.issued_at,
        expires_at=challenge.expires_at,
        target=challenge.target_hex,
        difficulty_factor=difficulty,
        algorithm="sha256",
    )


@router.post("/challenges/verify", response_model=VerificationResponse)
@limiter.limit(settings.rate_limit_verifications)
async def verify_challenge(
    request: Request,
    submission: SolutionSubmit,
    verifier: Verifier = Depends(get_verifier),
):
    """
    Verify a solved challenge. Succeeds at most once per challenge.

    Failures are mapped to status codes by the PowError handler in main.
    """
    verifier.verify(
        Solution(token=submission.token, nonce=submission.nonce),
        expected_context=submission.expected_context,
    )

    # Signature already verified above, so the unverified read is safe here
    challenge_id = decode_unverified(submission.token)["jti"]
    return VerificationResponse(valid=True, challenge_id=challenge_id)

from powgate.schemas.challenge import (
    Challenge,
    ChallengeCreate,
    ChallengeResponse,
    ContextValue,
    Solution,
    SolutionSubmit,
    VerificationResponse,
)

__all__ = [
    "Challenge",
    "ChallengeCreate",
    "ChallengeResponse",
    "ContextValue",
    "Solution",
    "SolutionSubmit",
    "VerificationResponse",
]

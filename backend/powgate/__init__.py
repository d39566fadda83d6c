"""Stateless signed proof-of-work challenges."""

from powgate.exceptions import (
    ChallengeGenerationError,
    ContextMismatchError,
    ErrorKind,
    ExhaustionError,
    ExpiryError,
    FormatError,
    InvalidInputError,
    PowError,
    ProofError,
    ReplayError,
    SignatureError,
)
from powgate.outcome import Outcome
from powgate.schemas.challenge import Challenge, Solution
from powgate.services.challenge_generator import ChallengeGenerator
from powgate.services.replay_store import InMemoryReplayStore, ReplayStore
from powgate.services.solver import Solver
from powgate.services.threshold import compute_target
from powgate.services.verifier import Verifier

__all__ = [
    "Challenge",
    "ChallengeGenerationError",
    "ChallengeGenerator",
    "ContextMismatchError",
    "ErrorKind",
    "ExhaustionError",
    "ExpiryError",
    "FormatError",
    "InMemoryReplayStore",
    "InvalidInputError",
    "Outcome",
    "PowError",
    "ProofError",
    "ReplayError",
    "ReplayStore",
    "SignatureError",
    "Solution",
    "Solver",
    "Verifier",
    "compute_target",
]

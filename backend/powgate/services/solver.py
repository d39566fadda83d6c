"""
Client-side proof-of-work solver.

Brute force: find the first nonce such that SHA-256(token || nonce) < target.
Expected attempts equal the difficulty factor, so solving cost scales with
difficulty while verification stays a single hash.
"""

import hashlib
import os
import time
from concurrent.futures import ProcessPoolExecutor
from itertools import islice

import structlog

from powgate.exceptions import ExhaustionError, InvalidInputError, PowError
from powgate.outcome import Outcome
from powgate.schemas.challenge import Solution
from powgate.services.proof import meets_target
from powgate.services.token_codec import read_target_unverified

DEFAULT_MAX_ATTEMPTS = 100_000_000
PROGRESS_INTERVAL = 1_000_000
DEFAULT_CHUNK_SIZE = 250_000

logger = structlog.get_logger()


def search_range(token: str, target_bytes: bytes, start: int, stop: int) -> tuple[int | None, int]:
    """
    Scan nonces in [start, stop).

    Returns (nonce, attempts) for the first hit, or (None, stop - start).
    Module level so worker processes can import it.
    """
    # Hash the token once and extend a copy per nonce
    prefix = hashlib.sha256(token.encode())
    for nonce in range(start, stop):
        h = prefix.copy()
        h.update(str(nonce).encode())
        if meets_target(h.digest(), target_bytes):
            return nonce, nonce - start + 1
    return None, stop - start


def _check_args(token, max_attempts) -> None:
    if not isinstance(token, str) or not token:
        raise InvalidInputError("Token must be a non-empty string")
    if isinstance(max_attempts, bool) or not isinstance(max_attempts, int) or max_attempts <= 0:
        raise InvalidInputError("Max attempts must be a positive integer")


class Solver:
    def __init__(self, progress_interval: int = PROGRESS_INTERVAL):
        if progress_interval <= 0:
            raise InvalidInputError("Progress interval must be positive")
        self._progress_interval = progress_interval

    def solve(self, token: str, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> Solution:
        """
        Find a nonce for a challenge token, single-threaded.

        The token signature is not checked; the solver only needs the target.

        Raises:
            InvalidInputError: empty token or non-positive max_attempts
            FormatError: token is not a challenge token
            ExhaustionError: no nonce below max_attempts satisfies the target
        """
        _check_args(token, max_attempts)
        target_bytes = read_target_unverified(token)

        logger.info(
            "pow_solve_started",
            target_prefix=target_bytes.hex()[:16],
            max_attempts=max_attempts,
        )

        start_time = time.perf_counter()
        attempts = 0
        for chunk_start in range(0, max_attempts, self._progress_interval):
            chunk_stop = min(chunk_start + self._progress_interval, max_attempts)
            nonce, scanned = search_range(token, target_bytes, chunk_start, chunk_stop)
            attempts += scanned
            if nonce is not None:
                return self._found(token, nonce, attempts, start_time)
            logger.debug("pow_solve_progress", attempts=attempts)

        logger.warning("pow_solve_exhausted", max_attempts=max_attempts)
        raise ExhaustionError(
            f"Failed to find solution: max attempts ({max_attempts}) reached",
            attempts=attempts,
        )

    def try_solve(self, token: str, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> Outcome[Solution]:
        """Like solve(), but returns an Outcome instead of raising PowError."""
        try:
            return Outcome.success(self.solve(token, max_attempts))
        except PowError as e:
            return Outcome.failure(e)

    def solve_parallel(
        self,
        token: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        workers: int | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> Solution:
        """
        Search disjoint nonce ranges in worker processes, first found wins.

        Chunks are dispatched in rounds of `workers`. Once a round yields a
        hit no further rounds start, and the smallest nonce of that round is
        returned. It may differ from the nonce solve() finds; any valid nonce
        verifies.
        """
        _check_args(token, max_attempts)
        if chunk_size <= 0:
            raise InvalidInputError("Chunk size must be positive")
        if workers is None:
            workers = os.cpu_count() or 1
        if isinstance(workers, bool) or not isinstance(workers, int) or workers <= 0:
            raise InvalidInputError("Workers must be a positive integer")
        if workers == 1:
            return self.solve(token, max_attempts)

        target_bytes = read_target_unverified(token)
        logger.info(
            "pow_solve_started",
            target_prefix=target_bytes.hex()[:16],
            max_attempts=max_attempts,
            workers=workers,
        )

        start_time = time.perf_counter()
        attempts = 0
        chunk_starts = iter(range(0, max_attempts, chunk_size))

        with ProcessPoolExecutor(max_workers=workers) as executor:
            while True:
                round_starts = list(islice(chunk_starts, workers))
                if not round_starts:
                    break

                futures = [
                    executor.submit(
                        search_range,
                        token,
                        target_bytes,
                        start,
                        min(start + chunk_size, max_attempts),
                    )
                    for start in round_starts
                ]
                found = []
                for future in futures:
                    nonce, scanned = future.result()
                    attempts += scanned
                    if nonce is not None:
                        found.append(nonce)

                if found:
                    return self._found(token, min(found), attempts, start_time)

        logger.warning("pow_solve_exhausted", max_attempts=max_attempts, workers=workers)
        raise ExhaustionError(
            f"Failed to find solution: max attempts ({max_attempts}) reached",
            attempts=attempts,
        )

    def _found(self, token: str, nonce: int, attempts: int, start_time: float) -> Solution:
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        hash_rate = attempts / (elapsed_ms / 1000) if elapsed_ms > 0 else None

        logger.info(
            "pow_solved",
            nonce=nonce,
            attempts=attempts,
            elapsed_ms=round(elapsed_ms, 2),
            hash_rate=round(hash_rate, 2) if hash_rate else None,
        )
        return Solution(token=token, nonce=nonce, attempts=attempts, elapsed_ms=elapsed_ms)

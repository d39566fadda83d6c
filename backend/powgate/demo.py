"""
Command-line demo of the full challenge round trip.

Generates a challenge, solves it, and verifies the solution with an in-memory
replay store, printing the cost of each phase. The asymmetry is the point:
verification is a single hash while solving grows with the difficulty.

Usage:
    powgate-demo
    powgate-demo --level hard
    powgate-demo --difficulty 250000 --workers 4 --replay
"""

import argparse
import sys
import time
from dataclasses import dataclass

from powgate.exceptions import PowError, ReplayError
from powgate.logging_config import setup_logging
from powgate.services.challenge_generator import ChallengeGenerator
from powgate.services.replay_store import InMemoryReplayStore
from powgate.services.solver import DEFAULT_MAX_ATTEMPTS, Solver
from powgate.services.threshold import expected_attempts
from powgate.services.verifier import Verifier

DEMO_SECRET = "powgate-demo-secret-with-at-least-256-bits!!"

LEVELS = {
    "easy": 100.0,
    "medium": 1_000.0,
    "hard": 10_000.0,
    "extreme": 100_000.0,
}


@dataclass
class RoundTimings:
    generate_us: float
    solve_ms: float
    verify_us: float
    attempts: int


def run_round(
    generator: ChallengeGenerator,
    solver: Solver,
    verifier: Verifier,
    difficulty: float,
    max_attempts: int,
    workers: int,
    replay: bool,
) -> RoundTimings:
    print(f"\n[1/3] Generating challenge (difficulty={difficulty:,.0f}) ...")
    start = time.perf_counter()
    challenge = generator.generate(difficulty)
    generate_us = (time.perf_counter() - start) * 1_000_000
    print(f"  jti:    {challenge.id}")
    print(f"  salt:   {challenge.salt}")
    print(f"  target: {challenge.target_hex[:32]}...")
    print(f"  token:  {challenge.token[:50]}...")
    print(f"  expected attempts: {expected_attempts(difficulty):,.0f}")

    print("\n[2/3] Solving ...")
    start = time.perf_counter()
    if workers > 1:
        solution = solver.solve_parallel(challenge.token, max_attempts, workers=workers)
    else:
        solution = solver.solve(challenge.token, max_attempts)
    solve_ms = (time.perf_counter() - start) * 1000
    print(f"  nonce:    {solution.nonce}")
    print(f"  attempts: {solution.attempts:,}")
    if solve_ms > 0:
        print(f"  hashrate: {solution.attempts / (solve_ms / 1000):,.0f} H/s")

    print("\n[3/3] Verifying ...")
    start = time.perf_counter()
    verifier.verify(solution)
    verify_us = (time.perf_counter() - start) * 1_000_000
    print("  valid")

    if replay:
        print("\n[replay] Submitting the same solution again ...")
        try:
            verifier.verify(solution)
        except ReplayError as e:
            print(f"  rejected: {e}")
        else:
            raise RuntimeError("Replay was accepted")

    return RoundTimings(
        generate_us=generate_us,
        solve_ms=solve_ms,
        verify_us=verify_us,
        attempts=solution.attempts or 0,
    )


def print_summary(timings: RoundTimings) -> None:
    print("\nSummary:")
    print(f"  generate: {timings.generate_us:,.0f} us")
    print(f"  solve:    {timings.solve_ms:,.1f} ms")
    print(f"  verify:   {timings.verify_us:,.0f} us")
    if timings.verify_us > 0:
        ratio = (timings.solve_ms * 1000) / timings.verify_us
        print(f"  verify/solve cost: 1 : {ratio:,.0f}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run a proof-of-work challenge round trip.",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--level",
        choices=sorted(LEVELS),
        default="easy",
        help="Difficulty preset (default: easy)",
    )
    group.add_argument("--difficulty", type=float, help="Custom difficulty factor (>= 1.0)")
    parser.add_argument("--rounds", type=int, default=1, help="Number of round trips")
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=DEFAULT_MAX_ATTEMPTS,
        help=f"Solver attempt budget (default: {DEFAULT_MAX_ATTEMPTS:,})",
    )
    parser.add_argument("--workers", type=int, default=1, help="Solver processes")
    parser.add_argument("--ttl", type=int, default=300, help="Challenge TTL in seconds")
    parser.add_argument(
        "--replay", action="store_true", help="Re-submit each solution to show replay rejection"
    )
    parser.add_argument("--verbose", action="store_true", help="Show service logs")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level="DEBUG" if args.verbose else "WARNING")

    difficulty = args.difficulty if args.difficulty is not None else LEVELS[args.level]

    try:
        generator = ChallengeGenerator(DEMO_SECRET, ttl_seconds=args.ttl)
        verifier = Verifier(DEMO_SECRET, replay_store=InMemoryReplayStore())
        solver = Solver()

        for round_number in range(1, args.rounds + 1):
            print("=" * 60)
            print(f"Round {round_number}/{args.rounds}")
            print("=" * 60)
            timings = run_round(
                generator,
                solver,
                verifier,
                difficulty,
                args.max_attempts,
                args.workers,
                args.replay,
            )
            print_summary(timings)
    except PowError as e:
        print(f"\nFailed ({e.kind.value}): {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

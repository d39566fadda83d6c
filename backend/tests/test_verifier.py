"""Tests for the verification check chain."""

import time
from unittest.mock import MagicMock

import pytest

from powgate.exceptions import (
    ContextMismatchError,
    ErrorKind,
    ExpiryError,
    FormatError,
    InvalidInputError,
    ProofError,
    ReplayError,
    SignatureError,
)
from powgate.schemas.challenge import Solution
from powgate.services.challenge_generator import ChallengeGenerator
from powgate.services.proof import proof_digest
from powgate.services.replay_store import InMemoryReplayStore, ReplayStore
from powgate.services.verifier import Verifier
from tests.test_utils import OTHER_SECRET, TEST_SECRET, tamper_segment


def find_bad_nonce(challenge) -> int:
    """Smallest nonce whose hash does NOT meet the target."""
    nonce = 0
    while proof_digest(challenge.token, nonce) < challenge.target_bytes:
        nonce += 1
    return nonce


@pytest.fixture
def solved(generator, solver):
    challenge = generator.generate(100.0)
    return challenge, solver.solve(challenge.token, max_attempts=10_000_000)


class TestAccept:
    def test_end_to_end_then_replay(self, solved, verifier, replay_store):
        challenge, solution = solved

        assert verifier.verify(solution) is True
        assert replay_store.is_used(challenge.id)

        with pytest.raises(ReplayError) as exc_info:
            verifier.verify(solution)
        assert exc_info.value.jti == challenge.id

    def test_real_clock_round_trip(self, solver):
        store = InMemoryReplayStore()
        generator = ChallengeGenerator(TEST_SECRET)
        verifier = Verifier(TEST_SECRET, replay_store=store)

        challenge = generator.generate(100.0)
        solution = solver.solve(challenge.token, max_attempts=10_000_000)

        assert verifier.verify(solution)
        with pytest.raises(ReplayError):
            verifier.verify(solution)

    def test_any_valid_nonce_is_accepted(self, generator, verifier):
        challenge = generator.generate(20)
        valid = [n for n in range(400) if proof_digest(challenge.token, n) < challenge.target_bytes]
        assert len(valid) >= 2

        # Not necessarily the first nonce a solver would find
        assert verifier.verify(Solution(token=challenge.token, nonce=valid[1]))

    def test_replay_record_expires_with_token(self, solved, verifier, replay_store):
        challenge, solution = solved
        verifier.verify(solution)
        assert replay_store._used[challenge.id] == challenge.expires_at

    def test_without_replay_store_verifies_repeatedly(self, solved, clock):
        _, solution = solved
        verifier = Verifier(TEST_SECRET, clock=clock)
        assert verifier.verify(solution)
        assert verifier.verify(solution)


class TestSignature:
    @pytest.mark.parametrize("segment", [1, 2])
    def test_tampering_is_signature_error(self, solved, verifier, replay_store, segment):
        challenge, solution = solved
        tampered = Solution(token=tamper_segment(challenge.token, segment), nonce=solution.nonce)

        with pytest.raises(SignatureError):
            verifier.verify(tampered)
        assert not replay_store.is_used(challenge.id)

    @pytest.mark.parametrize("segment", [1, 2])
    def test_every_bit_of_signed_segments_is_protected(self, solved, verifier, segment):
        challenge, solution = solved
        parts = challenge.token.split(".")
        original = parts[segment]
        for index, char in enumerate(original):
            for bit in range(7):
                flipped = chr(ord(char) ^ (1 << bit))
                if flipped == ".":
                    continue  # changes the segment count, not a segment
                parts[segment] = original[:index] + flipped + original[index + 1 :]
                with pytest.raises(SignatureError):
                    verifier.verify(Solution(token=".".join(parts), nonce=solution.nonce))

    def test_wrong_secret(self, solved, clock):
        _, solution = solved
        with pytest.raises(SignatureError):
            Verifier(OTHER_SECRET, clock=clock).verify(solution)

    def test_malformed_token_is_format_error(self, verifier):
        with pytest.raises(FormatError):
            verifier.verify(Solution(token="not.a-token", nonce=1))


class TestExpiry:
    def test_expired_after_ttl(self, clock, replay_store, solver):
        generator = ChallengeGenerator(TEST_SECRET, ttl_seconds=1, clock=clock)
        verifier = Verifier(TEST_SECRET, replay_store=replay_store, clock=clock)
        challenge = generator.generate(100.0)
        solution = solver.solve(challenge.token)

        clock.advance(2)

        with pytest.raises(ExpiryError):
            verifier.verify(solution)
        assert not replay_store.is_used(challenge.id)

    def test_valid_at_exact_expiry_second(self, solved, verifier, clock):
        challenge, solution = solved
        clock.now = challenge.expires_at
        assert verifier.verify(solution)

    def test_expired_with_real_sleep(self, solver):
        store = InMemoryReplayStore()
        generator = ChallengeGenerator(TEST_SECRET, ttl_seconds=1)
        verifier = Verifier(TEST_SECRET, replay_store=store)
        solution = solver.solve(generator.generate(100.0).token)

        time.sleep(2)

        with pytest.raises(ExpiryError):
            verifier.verify(solution)

    def test_expiry_checked_before_proof(self, generator, verifier, clock):
        challenge = generator.generate(2**200)
        clock.advance(301)
        with pytest.raises(ExpiryError):
            verifier.verify(Solution(token=challenge.token, nonce=0))


class TestContextBinding:
    @pytest.fixture
    def bound(self, generator, solver):
        challenge = generator.generate(100.0, context={"userId": "u1", "apiPath": "/orders"})
        return solver.solve(challenge.token)

    def test_matching_context(self, bound, verifier):
        assert verifier.verify(bound, expected_context={"userId": "u1"})

    def test_mismatched_value(self, bound, verifier, replay_store):
        with pytest.raises(ContextMismatchError) as exc_info:
            verifier.verify(bound, expected_context={"userId": "u2"})
        assert exc_info.value.key == "userId"
        assert replay_store._used == {}

    def test_missing_field(self, bound, verifier):
        with pytest.raises(ContextMismatchError) as exc_info:
            verifier.verify(bound, expected_context={"tenant": "acme"})
        assert exc_info.value.key == "tenant"

    def test_omitted_context_still_verifies(self, bound, verifier):
        assert verifier.verify(bound)

    def test_empty_context_still_verifies(self, bound, verifier):
        assert verifier.verify(bound, expected_context={})

    def test_reserved_keys_are_ignored(self, bound, verifier):
        assert verifier.verify(bound, expected_context={"jti": "anything", "userId": "u1"})

    def test_boolean_does_not_match_integer(self, generator, solver, verifier):
        solution = solver.solve(generator.generate(10, context={"flag": 1}).token)
        with pytest.raises(ContextMismatchError):
            verifier.verify(solution, expected_context={"flag": True})

    def test_context_checked_before_replay(self, bound, verifier):
        verifier.verify(bound, expected_context={"userId": "u1"})
        with pytest.raises(ContextMismatchError):
            verifier.verify(bound, expected_context={"userId": "u2"})


class TestProof:
    def test_bad_nonce_is_proof_error(self, generator, verifier, replay_store):
        challenge = generator.generate(100.0)
        bad = Solution(token=challenge.token, nonce=find_bad_nonce(challenge))

        with pytest.raises(ProofError):
            verifier.verify(bad)
        assert not replay_store.is_used(challenge.id)

    def test_retry_after_proof_failure(self, solved, verifier):
        challenge, solution = solved
        with pytest.raises(ProofError):
            verifier.verify(Solution(token=challenge.token, nonce=find_bad_nonce(challenge)))
        assert verifier.verify(solution)


class TestInputValidation:
    def test_negative_nonce(self, solved, verifier):
        challenge, _ = solved
        # model_construct skips validation, as a hand-built value could
        with pytest.raises(InvalidInputError):
            verifier.verify(Solution.model_construct(token=challenge.token, nonce=-1))

    def test_empty_token(self, verifier):
        with pytest.raises(InvalidInputError):
            verifier.verify(Solution.model_construct(token="", nonce=0))


class TestReplayStoreInteraction:
    def test_store_not_touched_on_signature_failure(self, solved, clock):
        challenge, solution = solved
        store = MagicMock(spec=ReplayStore)
        verifier = Verifier(TEST_SECRET, replay_store=store, clock=clock)

        with pytest.raises(SignatureError):
            verifier.verify(Solution(token=tamper_segment(challenge.token, 2), nonce=0))

        store.is_used.assert_not_called()
        store.claim.assert_not_called()

    def test_lost_claim_race_is_replay(self, solved, clock):
        _, solution = solved
        store = MagicMock(spec=ReplayStore)
        store.is_used.return_value = False
        store.claim.return_value = False
        verifier = Verifier(TEST_SECRET, replay_store=store, clock=clock)

        with pytest.raises(ReplayError):
            verifier.verify(solution)

    def test_claim_receives_expiry(self, solved, clock):
        challenge, solution = solved
        store = MagicMock(spec=ReplayStore)
        store.is_used.return_value = False
        store.claim.return_value = True
        verifier = Verifier(TEST_SECRET, replay_store=store, clock=clock)

        verifier.verify(solution)

        store.is_used.assert_called_once_with(challenge.id)
        store.claim.assert_called_once_with(challenge.id, challenge.expires_at)


class TestCheck:
    def test_success_outcome(self, solved, verifier):
        _, solution = solved
        outcome = verifier.check(solution)
        assert outcome.ok
        assert outcome.value is True

    def test_failure_outcomes(self, solved, verifier):
        _, solution = solved
        verifier.check(solution)

        outcome = verifier.check(solution)

        assert not outcome.ok
        assert outcome.kind is ErrorKind.REPLAY
        assert isinstance(outcome.error, ReplayError)

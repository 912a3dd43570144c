"""
Flight Oracles Test - Consensus Round

Validates:
- DECIDED iff some status code collects 3 accepted responses
- Non-matching oracles never contribute to the tally
- The first code to reach the threshold wins, later responses are recorded
- Re-delivered requests get independent rounds
- Rounds are bounded by their timeout
"""

import asyncio
import itertools
import random
import pytest
from typing import Dict, Iterable

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from flight_oracles.core.consensus import ConsensusRound, StatusTally
from flight_oracles.core.submitter import (
    FixedStatusSource,
    RandomStatusSource,
    ResponseSubmitter,
    StatusCodeSource,
)
from flight_oracles.ledger.memory import InMemoryLedger
from flight_oracles.models import (
    FlightRequest,
    RejectionReason,
    RoundState,
    StatusCode,
)


FLIGHT = "ND1309"
TIMESTAMP = 1700000000


# =============================================================================
# TEST HELPERS
# =============================================================================

class SequenceStatusSource(StatusCodeSource):
    """Hands out a fixed sequence of codes, one per oracle, in pool order."""

    def __init__(self, codes: Iterable[StatusCode]):
        self._codes = iter(codes)

    def next_code(self) -> StatusCode:
        return next(self._codes)


class DelayedLedger(InMemoryLedger):
    """In-memory ledger where each identity's response takes a set time."""

    def __init__(self, delays: Dict[str, float] = None, **kwargs):
        super().__init__(**kwargs)
        self.delays = delays or {}

    async def submit_oracle_response(self, identity, *args, **kwargs):
        await asyncio.sleep(self.delays.get(identity, 0))
        await super().submit_oracle_response(identity, *args, **kwargs)


async def open_request(ledger, request_index: int = 4) -> FlightRequest:
    airline = ledger.accounts[0]
    await ledger.fetch_flight_status(ledger.accounts[1], airline, FLIGHT, TIMESTAMP, request_index=request_index)
    return FlightRequest(request_index=request_index, airline=airline, flight=FLIGHT, timestamp=TIMESTAMP)


# =============================================================================
# STATUS TALLY
# =============================================================================

class TestStatusTally:
    """Per-round counter."""

    def test_starts_at_zero_for_every_code(self):
        tally = StatusTally()

        assert tally.total == 0
        assert tally.snapshot() == {0: 0, 10: 0, 20: 0, 30: 0, 40: 0, 50: 0}

    def test_increment_returns_new_count(self):
        tally = StatusTally()

        assert tally.increment(StatusCode.LATE_WEATHER) == 1
        assert tally.increment(StatusCode.LATE_WEATHER) == 2
        assert tally[StatusCode.LATE_WEATHER] == 2
        assert tally.total == 2


# =============================================================================
# ROUND OUTCOMES
# =============================================================================

class TestConsensusRound:
    """Outcomes of a single round."""

    @pytest.mark.asyncio
    async def test_three_matching_oracles_with_override_decide_late_airline(
        self, ledger, assign_pool, register_pool
    ):
        assign_pool(ledger, matching=[2, 19, 33])
        _, registry = await register_pool(ledger)
        request = await open_request(ledger, request_index=4)
        submitter = ResponseSubmitter(ledger, FixedStatusSource())

        result = await ConsensusRound(request, registry, submitter).run()

        assert result.state == RoundState.DECIDED
        assert result.accepted_code == StatusCode.LATE_AIRLINE
        assert result.reached_threshold is True
        assert result.matching_oracles == 3
        assert result.evaluated_oracles == 40
        assert result.tally[20] == 3
        assert all(s.status_code == StatusCode.LATE_AIRLINE for s in result.submissions if s.accepted)
        assert ledger.get_flight_status(request.airline, FLIGHT, TIMESTAMP) == StatusCode.LATE_AIRLINE

    @pytest.mark.asyncio
    async def test_two_matching_oracles_exhaust(self, ledger, assign_pool, register_pool):
        assign_pool(ledger, matching=[5, 6])
        _, registry = await register_pool(ledger)
        request = await open_request(ledger, request_index=4)
        submitter = ResponseSubmitter(ledger, FixedStatusSource())

        result = await ConsensusRound(request, registry, submitter).run()

        assert result.state == RoundState.EXHAUSTED
        assert result.accepted_code is None
        assert result.reached_threshold is False
        assert result.tally[20] == 2
        assert result.evaluated_oracles == 40
        assert ledger.get_flight_status(request.airline, FLIGHT, TIMESTAMP) is None

    @pytest.mark.asyncio
    async def test_no_matching_oracles_exhaust_immediately(self, ledger, assign_pool, register_pool):
        assign_pool(ledger, matching=[])
        _, registry = await register_pool(ledger)
        request = await open_request(ledger, request_index=4)

        result = await ConsensusRound(request, registry, ResponseSubmitter(ledger)).run()

        assert result.state == RoundState.EXHAUSTED
        assert result.matching_oracles == 0
        assert result.submissions == []

    @pytest.mark.asyncio
    async def test_non_matching_oracles_never_contribute(self, ledger, register_pool):
        _, registry = await register_pool(ledger)
        request = await open_request(ledger, request_index=7)
        matching = {r.identity for r in registry.matching(7)}

        result = await ConsensusRound(
            request, registry, ResponseSubmitter(ledger, RandomStatusSource(random.Random(3)))
        ).run()

        assert sum(result.tally.values()) <= len(matching)
        assert {s.identity for s in result.submissions} <= matching
        assert len(result.submissions) == len(matching)

    @pytest.mark.asyncio
    async def test_decided_iff_a_code_reaches_threshold(self, register_pool):
        for seed in range(8):
            ledger = InMemoryLedger(account_count=46, seed=seed, close_on_finalize=False)
            _, registry = await register_pool(ledger)
            request = await open_request(ledger, request_index=seed % 10)
            source = RandomStatusSource(random.Random(seed))

            result = await ConsensusRound(request, registry, ResponseSubmitter(ledger, source)).run()

            reached = any(count >= 3 for count in result.tally.values())
            assert (result.state == RoundState.DECIDED) == reached
            if reached:
                assert result.tally[int(result.accepted_code)] >= 3

    @pytest.mark.asyncio
    async def test_ledger_closes_request_after_threshold(self, ledger, assign_pool, register_pool):
        assign_pool(ledger, matching=[1, 2, 3, 4, 5])
        _, registry = await register_pool(ledger)
        request = await open_request(ledger, request_index=4)

        result = await ConsensusRound(request, registry, ResponseSubmitter(ledger, FixedStatusSource())).run()

        assert result.state == RoundState.DECIDED
        assert result.accepted_submissions == 3
        assert result.rejected_submissions == 2
        rejected = [s for s in result.submissions if not s.accepted]
        assert all(s.reason == RejectionReason.REQUEST_CLOSED for s in rejected)

    @pytest.mark.asyncio
    async def test_unopened_request_is_rejected_by_ledger(self, ledger, assign_pool, register_pool):
        assign_pool(ledger, matching=[1, 2, 3])
        _, registry = await register_pool(ledger)
        # Never opened on the ledger
        request = FlightRequest(request_index=4, airline=ledger.accounts[0], flight="XX0000", timestamp=1)

        result = await ConsensusRound(request, registry, ResponseSubmitter(ledger, FixedStatusSource())).run()

        assert result.state == RoundState.EXHAUSTED
        assert result.accepted_submissions == 0
        assert result.rejected_submissions == 3

    @pytest.mark.asyncio
    async def test_round_runs_once(self, ledger, register_pool):
        _, registry = await register_pool(ledger)
        request = await open_request(ledger)
        consensus_round = ConsensusRound(request, registry, ResponseSubmitter(ledger))

        await consensus_round.run()

        with pytest.raises(RuntimeError):
            await consensus_round.run()

    def test_threshold_must_be_positive(self):
        request = FlightRequest(request_index=1, airline="0xabc", flight=FLIGHT, timestamp=TIMESTAMP)
        with pytest.raises(ValueError):
            ConsensusRound(request, registry=None, submitter=None, threshold=0)


# =============================================================================
# ORDERING AND RACES
# =============================================================================

class TestCompletionOrder:
    """First code to reach the threshold in completion order wins."""

    @pytest.mark.asyncio
    async def test_first_code_to_threshold_wins(self, assign_pool, register_pool):
        ledger = DelayedLedger(account_count=46, seed=1, close_on_finalize=False)
        assign_pool(ledger, matching=[1, 2, 3, 4, 5, 6])
        _, registry = await register_pool(ledger)

        oracles = registry.matching(4)
        # ON_TIME is issued first but completes last
        for oracle in oracles[:3]:
            ledger.delays[oracle.identity] = 0.05
        for oracle in oracles[3:]:
            ledger.delays[oracle.identity] = 0.0
        source = SequenceStatusSource([StatusCode.ON_TIME] * 3 + [StatusCode.LATE_WEATHER] * 3)

        request = await open_request(ledger, request_index=4)
        result = await ConsensusRound(request, registry, ResponseSubmitter(ledger, source)).run()

        assert result.state == RoundState.DECIDED
        assert result.accepted_code == StatusCode.LATE_WEATHER
        # Both codes reached 3 but only the first one decides
        assert result.tally[10] == 3
        assert result.tally[30] == 3
        assert result.late_submissions == 3

    @pytest.mark.asyncio
    async def test_late_submissions_recorded_without_changing_outcome(self, assign_pool, register_pool):
        ledger = InMemoryLedger(account_count=46, seed=2, close_on_finalize=False)
        assign_pool(ledger, matching=[1, 2, 3, 4, 5])
        _, registry = await register_pool(ledger)
        request = await open_request(ledger, request_index=4)

        result = await ConsensusRound(request, registry, ResponseSubmitter(ledger, FixedStatusSource())).run()

        assert result.accepted_code == StatusCode.LATE_AIRLINE
        assert result.accepted_submissions == 5
        assert result.late_submissions == 2
        assert len(result.submissions) == 5

    @pytest.mark.asyncio
    async def test_concurrent_completions_decide_exactly_once(self, assign_pool, register_pool):
        ledger = InMemoryLedger(account_count=46, seed=3, latency_seconds=0.01, close_on_finalize=False)
        assign_pool(ledger, matching=range(1, 21))
        _, registry = await register_pool(ledger)
        codes = itertools.cycle([StatusCode.ON_TIME, StatusCode.LATE_OTHER])
        request = await open_request(ledger, request_index=4)

        result = await ConsensusRound(
            request, registry, ResponseSubmitter(ledger, SequenceStatusSource(codes))
        ).run()

        assert result.state == RoundState.DECIDED
        assert result.accepted_code in (StatusCode.ON_TIME, StatusCode.LATE_OTHER)
        assert result.accepted_submissions == 20
        assert result.tally[int(result.accepted_code)] == 10
        # Everything after the deciding response is late
        decided_after = result.accepted_submissions - result.late_submissions
        assert 3 <= decided_after <= 5


# =============================================================================
# INDEPENDENCE AND TIMEOUTS
# =============================================================================

class TestRoundIsolation:
    """Rounds never share state."""

    @pytest.mark.asyncio
    async def test_redelivered_request_gets_independent_tally(self, assign_pool, register_pool):
        ledger = InMemoryLedger(account_count=46, seed=4, close_on_finalize=False)
        assign_pool(ledger, matching=[1, 2, 3])
        _, registry = await register_pool(ledger)
        request = await open_request(ledger, request_index=4)
        submitter = ResponseSubmitter(ledger, FixedStatusSource())

        first = ConsensusRound(request, registry, submitter)
        second = ConsensusRound(request, registry, submitter)
        first_result = await first.run()
        second_result = await second.run()

        assert first.round_id != second.round_id
        assert first.tally is not second.tally
        assert first_result.tally[20] == 3
        assert second_result.tally[20] == 3
        assert first_result.state == second_result.state == RoundState.DECIDED

    @pytest.mark.asyncio
    async def test_timeout_forces_exhausted(self, assign_pool, register_pool):
        ledger = DelayedLedger(account_count=46, seed=5)
        assign_pool(ledger, matching=[1, 2, 3])
        _, registry = await register_pool(ledger)
        stuck = registry.matching(4)[2]
        ledger.delays[stuck.identity] = 10.0
        request = await open_request(ledger, request_index=4)

        result = await ConsensusRound(
            request,
            registry,
            ResponseSubmitter(ledger, FixedStatusSource()),
            timeout_seconds=0.1,
        ).run()

        assert result.timed_out is True
        assert result.state == RoundState.EXHAUSTED
        assert result.tally[20] == 2

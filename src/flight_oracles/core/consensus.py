"""
Consensus Round

Coordinates every oracle for one OracleRequest and turns their
independent answers into a single accepted status.

State machine:
    OPEN -> DECIDED    a status code collected `threshold` accepted responses
    OPEN -> EXHAUSTED  every oracle was evaluated (or the round timed out)
                       without any code reaching the threshold

Every matching oracle submits concurrently, so completions arrive in any
order. The tally belongs to the round and is only touched under the
round's lock; the threshold check and the OPEN -> DECIDED transition happen
in the same critical section, so exactly one code can win. Responses
accepted after the decision are recorded but never change the outcome.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Dict, List, Optional
import logging

from ..models import (
    CONSENSUS_THRESHOLD,
    ConsensusResult,
    FlightRequest,
    OracleRecord,
    RoundState,
    StatusCode,
    SubmissionResult,
    utcnow,
)
from .registry import OracleRegistry
from .submitter import ResponseSubmitter


logger = logging.getLogger(__name__)


class StatusTally:
    """Accepted-response counter per status code."""

    def __init__(self):
        self._counts: Dict[StatusCode, int] = {code: 0 for code in StatusCode}

    def increment(self, code: StatusCode) -> int:
        self._counts[code] += 1
        return self._counts[code]

    def __getitem__(self, code: StatusCode) -> int:
        return self._counts[code]

    @property
    def total(self) -> int:
        return sum(self._counts.values())

    def snapshot(self) -> Dict[int, int]:
        return {int(code): count for code, count in self._counts.items()}


class ConsensusRound:
    """
    One round of oracle consensus for a FlightRequest.

    A round runs once. Delivering the same request again means creating a
    new ConsensusRound, with its own tally.

    Example:
        round_ = ConsensusRound(request, registry, submitter)
        result = await round_.run()
        if result.state == RoundState.DECIDED:
            print(result.accepted_code)
    """

    def __init__(
        self,
        request: FlightRequest,
        registry: OracleRegistry,
        submitter: ResponseSubmitter,
        threshold: int = CONSENSUS_THRESHOLD,
        timeout_seconds: Optional[float] = None,
        round_id: Optional[str] = None,
    ):
        """
        Initialize a round.

        Args:
            request: The OracleRequest being answered
            registry: Registered oracles (evaluated in full)
            submitter: Generates and submits each oracle's response
            threshold: Accepted responses required for a decision
            timeout_seconds: Force EXHAUSTED after this long (None = wait)
            round_id: Identifier for observers (generated if omitted)
        """
        if threshold < 1:
            raise ValueError("threshold must be at least 1")

        self.round_id = round_id or uuid.uuid4().hex
        self.request = request
        self._registry = registry
        self._submitter = submitter
        self._threshold = threshold
        self._timeout = timeout_seconds

        self._lock = asyncio.Lock()
        self._tally = StatusTally()
        self._state = RoundState.OPEN
        self._accepted_code: Optional[StatusCode] = None
        self._submissions: List[SubmissionResult] = []
        self._rejected = 0
        self._late = 0
        self._timed_out = False
        self._started = False
        self._decided_at = None
        self._result: Optional[ConsensusResult] = None

    @property
    def state(self) -> RoundState:
        return self._state

    @property
    def accepted_code(self) -> Optional[StatusCode]:
        return self._accepted_code

    @property
    def tally(self) -> StatusTally:
        return self._tally

    @property
    def result(self) -> Optional[ConsensusResult]:
        return self._result

    async def run(self) -> ConsensusResult:
        """
        Fan out to every matching oracle and wait for the outcome.

        Returns:
            The ConsensusResult (DECIDED or EXHAUSTED)
        """
        if self._started:
            raise RuntimeError(f"Round {self.round_id} has already run")
        self._started = True
        started_at = utcnow()

        oracles = self._registry.records
        matching = [oracle for oracle in oracles if oracle.matches(self.request.request_index)]
        logger.info(
            f"OracleRequest received: {self.request} "
            f"({len(matching)} of {len(oracles)} oracles match index {self.request.request_index})"
        )

        tasks = [asyncio.create_task(self._respond(oracle)) for oracle in matching]
        if tasks:
            try:
                outcomes = await asyncio.wait_for(
                    asyncio.gather(*tasks, return_exceptions=True), self._timeout
                )
                for oracle, outcome in zip(matching, outcomes):
                    if isinstance(outcome, Exception):
                        logger.error(f"{oracle} failed to respond: {outcome}")
            except asyncio.TimeoutError:
                self._timed_out = True
                logger.warning(
                    f"Round {self.round_id[:8]} timed out after {self._timeout}s with "
                    f"{sum(1 for t in tasks if not t.done())} oracle(s) still pending"
                )

        async with self._lock:
            if self._state == RoundState.OPEN:
                self._state = RoundState.EXHAUSTED
                logger.info(
                    f"Round {self.round_id[:8]} exhausted: no status code reached "
                    f"{self._threshold} responses {self._tally.snapshot()}"
                )

            self._result = ConsensusResult(
                round_id=self.round_id,
                request=self.request,
                state=self._state,
                accepted_code=self._accepted_code,
                reached_threshold=self._state == RoundState.DECIDED,
                threshold=self._threshold,
                tally=self._tally.snapshot(),
                evaluated_oracles=len(oracles),
                matching_oracles=len(matching),
                accepted_submissions=self._tally.total,
                rejected_submissions=self._rejected,
                late_submissions=self._late,
                timed_out=self._timed_out,
                submissions=list(self._submissions),
                started_at=started_at,
                decided_at=self._decided_at,
                finished_at=utcnow(),
            )
        return self._result

    async def _respond(self, oracle: OracleRecord) -> None:
        code = self._submitter.generate_code()
        submission = await self._submitter.submit(oracle, self.request, code)
        await self._record(oracle, submission)

    async def _record(self, oracle: OracleRecord, submission: SubmissionResult) -> None:
        async with self._lock:
            self._submissions.append(submission)

            if not submission.accepted:
                self._rejected += 1
                return

            code = submission.status_code
            count = self._tally.increment(code)
            logger.info(
                f"{oracle} submitted {code.label} for {self.request.flight} "
                f"({count}/{self._threshold})"
            )

            if self._state != RoundState.OPEN:
                self._late += 1
                return

            if count >= self._threshold:
                self._state = RoundState.DECIDED
                self._accepted_code = code
                self._decided_at = utcnow()
                logger.info(
                    f"Round {self.round_id[:8]} decided: {code.label} verified for "
                    f"flight {self.request.flight}"
                )
                if code == StatusCode.LATE_AIRLINE:
                    logger.warning(
                        f"LATE AIRLINE status verified for flight {self.request.flight}; "
                        f"insurees have been credited"
                    )

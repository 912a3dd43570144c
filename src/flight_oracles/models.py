"""
Flight Oracles Core Data Models

This module defines the data structures exchanged between the oracle server
components and the FlightSurety ledger.

Using Pydantic for validation at the ledger boundary: anything coming back
from the chain (index triples, event payloads) is checked before the
consensus engine relies on it.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Optional, List, Dict, Tuple

from pydantic import BaseModel, Field, ConfigDict, field_validator


# Number of distinct index values the contract draws from (0-9)
INDEX_RANGE = 10

# Identical responses required before a status is accepted
CONSENSUS_THRESHOLD = 3

# Owner, first airline and five passengers share the first six accounts
RESERVED_ACCOUNTS_COUNT = 6

# Oracles registered at startup
ORACLE_POOL_SIZE = 40


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class StatusCode(IntEnum):
    """
    Flight status codes understood by the FlightSuretyApp contract.

    Only LATE_AIRLINE triggers insurance payouts on-chain; the others are
    informational.
    """
    UNKNOWN = 0
    ON_TIME = 10
    LATE_AIRLINE = 20
    LATE_WEATHER = 30
    LATE_TECHNICAL = 40
    LATE_OTHER = 50

    @property
    def label(self) -> str:
        """Contract constant name, e.g. STATUS_CODE_LATE_AIRLINE."""
        return f"STATUS_CODE_{self.name}"


class RoundState(str, Enum):
    """
    Lifecycle of a consensus round.

    OPEN: accepting submissions
    DECIDED: a status code reached the threshold (terminal)
    EXHAUSTED: every oracle was evaluated without consensus (terminal)
    """
    OPEN = "OPEN"
    DECIDED = "DECIDED"
    EXHAUSTED = "EXHAUSTED"

    @property
    def is_terminal(self) -> bool:
        return self is not RoundState.OPEN


class RejectionReason(str, Enum):
    """Why the ledger declined an oracle response."""
    INDEX_MISMATCH = "INDEX_MISMATCH"      # oracle does not hold the request index
    REQUEST_CLOSED = "REQUEST_CLOSED"      # no open request for that key
    LEDGER_REJECTED = "LEDGER_REJECTED"    # any other revert
    LEDGER_ERROR = "LEDGER_ERROR"          # transport failure


# =============================================================================
# CORE DATA MODELS
# =============================================================================

FlightKey = Tuple[str, str, int]


class OracleRecord(BaseModel):
    """
    A registered oracle and the indexes the ledger assigned to it.

    Attributes:
        identity: Account address the oracle transacts from
        indexes: The three indexes assigned at registration time
        ordinal: 1-based position of the oracle in the pool (for logs)
    """
    model_config = ConfigDict(frozen=True)

    identity: str
    indexes: Tuple[int, int, int]
    ordinal: int = Field(default=0, ge=0)

    @field_validator("indexes")
    @classmethod
    def _indexes_in_range(cls, value: Tuple[int, int, int]) -> Tuple[int, int, int]:
        for index in value:
            if not 0 <= index < INDEX_RANGE:
                raise ValueError(
                    f"oracle index {index} outside [0, {INDEX_RANGE})"
                )
        return value

    def matches(self, request_index: int) -> bool:
        """Check whether this oracle may answer a request with the given index."""
        return request_index in self.indexes

    def __str__(self) -> str:
        i0, i1, i2 = self.indexes
        return f"Oracle {self.ordinal} at account {self.identity} ({i0}, {i1}, {i2})"


class FlightRequest(BaseModel):
    """
    Payload of an OracleRequest event.

    The (airline, flight, timestamp) triple identifies the flight; the
    request index selects which oracles are allowed to respond.
    """
    model_config = ConfigDict(frozen=True)

    request_index: int = Field(..., ge=0, lt=INDEX_RANGE)
    airline: str
    flight: str
    timestamp: int = Field(..., ge=0)

    @property
    def flight_key(self) -> FlightKey:
        return (self.airline, self.flight, self.timestamp)

    def __str__(self) -> str:
        return (
            f"index {self.request_index} - airline {self.airline} - "
            f"flight {self.flight} - timestamp {self.timestamp}"
        )


class SubmissionResult(BaseModel):
    """
    Outcome of one oracle response submitted to the ledger.

    A rejection is a normal outcome of probing, not a failure.
    """
    model_config = ConfigDict(frozen=True)

    identity: str
    status_code: StatusCode
    accepted: bool
    reason: Optional[RejectionReason] = None
    detail: str = ""
    completed_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def accept(cls, identity: str, status_code: StatusCode) -> "SubmissionResult":
        return cls(identity=identity, status_code=status_code, accepted=True)

    @classmethod
    def reject(
        cls,
        identity: str,
        status_code: StatusCode,
        reason: RejectionReason,
        detail: str = "",
    ) -> "SubmissionResult":
        return cls(
            identity=identity,
            status_code=status_code,
            accepted=False,
            reason=reason,
            detail=detail,
        )


class ConsensusResult(BaseModel):
    """
    Final outcome of a consensus round.

    This is what gets reported to observers (log, result store, status API).
    """
    round_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    request: FlightRequest
    state: RoundState

    # The verdict
    accepted_code: Optional[StatusCode] = None
    reached_threshold: bool = False
    threshold: int = CONSENSUS_THRESHOLD

    # Tally and counters (for observability)
    tally: Dict[int, int] = Field(default_factory=dict)
    evaluated_oracles: int = 0
    matching_oracles: int = 0
    accepted_submissions: int = 0
    rejected_submissions: int = 0
    late_submissions: int = 0
    timed_out: bool = False
    submissions: List[SubmissionResult] = Field(default_factory=list)

    # Audit trail
    started_at: datetime = Field(default_factory=utcnow)
    decided_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def flight_key(self) -> FlightKey:
        return self.request.flight_key

    @property
    def duration_ms(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds() * 1000

    def summary(self) -> str:
        """One-line description for logs and CLI output."""
        airline, flight, timestamp = self.flight_key
        if self.state == RoundState.DECIDED and self.accepted_code is not None:
            verdict = f"DECIDED {self.accepted_code.label}"
        else:
            verdict = self.state.value
        return (
            f"round {self.round_id[:8]} flight {flight} ({airline} @ {timestamp}) "
            f"index {self.request.request_index}: {verdict} "
            f"[{self.accepted_submissions} accepted / {self.matching_oracles} matching]"
        )

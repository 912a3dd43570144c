"""
Flight Oracles Test - Data Models

Validates status codes, oracle records, flight requests and result
serialization.
"""

import pytest
from pydantic import ValidationError

import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from flight_oracles.models import (
    ConsensusResult,
    FlightRequest,
    OracleRecord,
    RejectionReason,
    RoundState,
    StatusCode,
    SubmissionResult,
)


class TestStatusCode:

    def test_contract_values(self):
        assert [int(code) for code in StatusCode] == [0, 10, 20, 30, 40, 50]

    def test_labels_match_contract_constants(self):
        assert StatusCode.LATE_AIRLINE.label == "STATUS_CODE_LATE_AIRLINE"
        assert StatusCode(0).label == "STATUS_CODE_UNKNOWN"

    def test_terminal_states(self):
        assert not RoundState.OPEN.is_terminal
        assert RoundState.DECIDED.is_terminal
        assert RoundState.EXHAUSTED.is_terminal


class TestOracleRecord:

    def test_matches_only_its_indexes(self):
        record = OracleRecord(identity="0xabc", indexes=(1, 4, 7), ordinal=3)

        assert [i for i in range(10) if record.matches(i)] == [1, 4, 7]

    def test_index_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            OracleRecord(identity="0xabc", indexes=(1, 4, 10))
        with pytest.raises(ValidationError):
            OracleRecord(identity="0xabc", indexes=(-1, 4, 7))

    def test_exactly_three_indexes(self):
        with pytest.raises(ValidationError):
            OracleRecord(identity="0xabc", indexes=(1, 4))

    def test_records_are_immutable(self):
        record = OracleRecord(identity="0xabc", indexes=(1, 4, 7))

        with pytest.raises(ValidationError):
            record.indexes = (2, 3, 5)

    def test_display(self):
        record = OracleRecord(identity="0xabc", indexes=(1, 4, 7), ordinal=12)

        assert str(record) == "Oracle 12 at account 0xabc (1, 4, 7)"


class TestFlightRequest:

    def test_flight_key(self):
        request = FlightRequest(request_index=4, airline="0xair", flight="IB3971", timestamp=99)

        assert request.flight_key == ("0xair", "IB3971", 99)

    def test_request_index_bounded(self):
        with pytest.raises(ValidationError):
            FlightRequest(request_index=10, airline="0xair", flight="IB3971", timestamp=99)

    def test_equal_payloads_are_equal(self):
        a = FlightRequest(request_index=4, airline="0xair", flight="IB3971", timestamp=99)
        b = FlightRequest(request_index=4, airline="0xair", flight="IB3971", timestamp=99)

        assert a == b
        assert hash(a) == hash(b)


class TestConsensusResult:

    def test_summary_for_decided_round(self):
        request = FlightRequest(request_index=4, airline="0xair", flight="IB3971", timestamp=99)
        result = ConsensusResult(
            round_id="abcdef0123456789",
            request=request,
            state=RoundState.DECIDED,
            accepted_code=StatusCode.LATE_AIRLINE,
            reached_threshold=True,
            accepted_submissions=3,
            matching_oracles=4,
        )

        summary = result.summary()

        assert summary.startswith("round abcdef01 flight IB3971")
        assert "DECIDED STATUS_CODE_LATE_AIRLINE" in summary
        assert "[3 accepted / 4 matching]" in summary

    def test_json_round_trip_keeps_enums(self):
        request = FlightRequest(request_index=2, airline="0xair", flight="BA2871", timestamp=7)
        result = ConsensusResult(
            request=request,
            state=RoundState.EXHAUSTED,
            tally={10: 1, 20: 2},
            submissions=[
                SubmissionResult.accept("0x1", StatusCode.LATE_AIRLINE),
                SubmissionResult.reject("0x2", StatusCode.ON_TIME, RejectionReason.INDEX_MISMATCH),
            ],
        )

        loaded = ConsensusResult.model_validate_json(result.model_dump_json())

        assert loaded.state is RoundState.EXHAUSTED
        assert loaded.tally == {10: 1, 20: 2}
        assert loaded.submissions[1].reason is RejectionReason.INDEX_MISMATCH
        assert loaded.duration_ms == 0.0

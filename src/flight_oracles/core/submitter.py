"""
Response Submitter

Generates an oracle's answer and submits it to the ledger.

Answers come from an injectable StatusCodeSource:
    - RandomStatusSource: uniform over the six status codes (default)
    - FixedStatusSource: always the same code, LATE_AIRLINE unless told
      otherwise, so consensus outcomes are reproducible

The source is chosen from configuration at startup; see
status_source_from_config().
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from typing import Optional
import logging

from ..config import OracleConfig
from ..errors import LedgerError, SubmissionRejected
from ..ledger.base import LedgerClient
from ..models import (
    FlightRequest,
    OracleRecord,
    RejectionReason,
    StatusCode,
    SubmissionResult,
)


logger = logging.getLogger(__name__)


class StatusCodeSource(ABC):
    """Produces the status code an oracle reports."""

    @abstractmethod
    def next_code(self) -> StatusCode:
        pass


class RandomStatusSource(StatusCodeSource):
    """Uniform random choice over every StatusCode."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()
        self._codes = list(StatusCode)

    def next_code(self) -> StatusCode:
        return self._rng.choice(self._codes)


class FixedStatusSource(StatusCodeSource):
    """Always reports the same code."""

    def __init__(self, code: StatusCode = StatusCode.LATE_AIRLINE):
        self.code = StatusCode(code)

    def next_code(self) -> StatusCode:
        return self.code


def status_source_from_config(
    config: OracleConfig,
    rng: Optional[random.Random] = None,
) -> StatusCodeSource:
    """Pick the status source selected by OracleConfig.force_late_airline."""
    if config.force_late_airline:
        logger.warning("FORCE_LATE_AIRLINE enabled: every oracle answers LATE_AIRLINE")
        return FixedStatusSource(StatusCode.LATE_AIRLINE)
    return RandomStatusSource(rng)


class ResponseSubmitter:
    """
    Submits oracle responses, one ledger transaction per call.

    Calls are independent and may run concurrently for the same round.
    Nothing is retried.
    """

    def __init__(self, ledger: LedgerClient, status_source: Optional[StatusCodeSource] = None):
        self._ledger = ledger
        self._source = status_source or RandomStatusSource()

    @property
    def status_source(self) -> StatusCodeSource:
        return self._source

    def generate_code(self) -> StatusCode:
        return self._source.next_code()

    async def submit(
        self,
        oracle: OracleRecord,
        request: FlightRequest,
        code: StatusCode,
    ) -> SubmissionResult:
        """
        Submit one response for an oracle.

        Args:
            oracle: Oracle sending the response
            request: The request being answered
            code: Status code to report

        Returns:
            Accepted or rejected SubmissionResult
        """
        try:
            await self._ledger.submit_oracle_response(
                oracle.identity,
                request.request_index,
                request.airline,
                request.flight,
                request.timestamp,
                code,
            )
        except SubmissionRejected as e:
            logger.debug(f"Response from {oracle.identity} rejected: {e.message}")
            return SubmissionResult.reject(oracle.identity, code, e.reason, e.message)
        except LedgerError as e:
            logger.warning(f"Response from {oracle.identity} not delivered: {e}")
            return SubmissionResult.reject(
                oracle.identity, code, RejectionReason.LEDGER_ERROR, str(e)
            )

        return SubmissionResult.accept(oracle.identity, code)

"""
Flight Oracles Error Types

Nothing in this hierarchy is process-fatal: registration failures are
isolated per oracle, submission rejections are expected outcomes and
subscription failures are retried by the listener.
"""

from __future__ import annotations

from typing import Optional

from .models import RejectionReason


class OracleServerError(Exception):
    """Base class for all oracle server errors."""


class LedgerError(OracleServerError):
    """Transport-level failure talking to the ledger."""


class SubscriptionFailure(LedgerError):
    """The OracleRequest event subscription failed."""


# =============================================================================
# REGISTRATION
# =============================================================================

class RegistrationFailure(OracleServerError):
    """An oracle identity could not be registered."""

    def __init__(self, identity: str, message: str = ""):
        self.identity = identity
        self.message = message or self.__class__.__name__
        super().__init__(f"{identity}: {self.message}")


class InsufficientFee(RegistrationFailure):
    """The value sent with registerOracle was below REGISTRATION_FEE."""

    def __init__(self, identity: str, paid: Optional[int] = None, required: Optional[int] = None):
        self.paid = paid
        self.required = required
        if paid is not None and required is not None:
            message = f"registration fee is required (paid {paid}, required {required})"
        else:
            message = "registration fee is required"
        super().__init__(identity, message)


class AlreadyRegistered(RegistrationFailure):
    """The identity already holds an oracle registration."""

    def __init__(self, identity: str):
        super().__init__(identity, "oracle is already registered")


class LedgerRejected(RegistrationFailure):
    """Any other revert raised by the contract during registration."""


# =============================================================================
# SUBMISSION
# =============================================================================

class SubmissionRejected(OracleServerError):
    """
    The ledger declined an oracle response.

    Raised by ledger clients and converted into a rejected
    SubmissionResult by the ResponseSubmitter.
    """

    def __init__(self, reason: RejectionReason, message: str = ""):
        self.reason = reason
        self.message = message or reason.value
        super().__init__(self.message)

"""
Cycle Error Hierarchy
=====================
Every failure the lifecycle can surface to the driver.

    CycleError
    ├── ConfigurationError        bad/missing credentials or endpoint
    ├── TransientVisibilityError  read lags a confirmed write
    │   ├── PositionNotVisibleError
    │   └── RetryExhaustedError   lag outlived the retry budget
    ├── SubmissionError           transaction rejected / unconfirmed
    ├── BridgeError               SDK bridge call failed (reads and builds)
    ├── ConsistencyViolation      positions remain after a confirmed close
    ├── RetryCancelledError       retry wait aborted by the caller
    └── LifecycleStateError       operation requested in the wrong state
"""

from typing import Optional


class CycleError(Exception):
    """Base class for all lifecycle errors."""


class ConfigurationError(CycleError):
    """Missing or malformed credentials / endpoint. Fatal, never retried."""


class TransientVisibilityError(CycleError):
    """A read does not yet reflect a just-confirmed write."""


class PositionNotVisibleError(TransientVisibilityError):
    def __init__(self, owner: str):
        super().__init__(f"Position not found after creation (owner {owner})")
        self.owner = owner


class RetryExhaustedError(TransientVisibilityError):
    """
    Raised when a visibility read kept failing for every allowed attempt.

    Carries the last underlying error; earlier attempt errors are discarded.
    """

    def __init__(self, message: str, last_error: BaseException, attempts: int):
        super().__init__(f"{message} after {attempts} attempt(s): {last_error}")
        self.last_error = last_error
        self.attempts = attempts


class SubmissionError(CycleError):
    """The ledger rejected or failed to confirm a transaction."""

    def __init__(self, message: str, signature: Optional[str] = None):
        super().__init__(message)
        self.signature = signature


class BridgeError(CycleError):
    """The CP-AMM SDK bridge returned an error or unreadable output."""

    def __init__(self, command: str, message: str):
        super().__init__(f"Bridge command '{command}' failed: {message}")
        self.command = command


class ConsistencyViolation(CycleError):
    """Positions are still observable after a confirmed close."""

    def __init__(self, remaining: int, signature: Optional[str] = None):
        super().__init__(
            f"Position still exists after close attempt. Found {remaining} position(s)"
        )
        self.remaining = remaining
        self.signature = signature


class RetryCancelledError(CycleError):
    """A retry wait was aborted through its cancel event."""


class LifecycleStateError(CycleError):
    """An operation was requested from a state that does not allow it."""

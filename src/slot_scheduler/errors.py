"""Exceptions raised outside the pure scheduling functions.

Blocked and confirm-replace outcomes are verdicts, not exceptions; see
``conflicts.py``.
"""


class SchedulerError(Exception):
    """Base class for booking errors."""


class RemoteFailure(SchedulerError):
    """An external collaborator (directory, appointment service) failed."""

    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        self.detail = detail
        message = f"{operation} failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class InvalidTransition(SchedulerError):
    """The booking flow was asked to move between phases that are not connected."""

    def __init__(self, current, target) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Cannot move from {current.name} to {target.name}")


class InvalidSelection(SchedulerError):
    """A clinic, doctor, date or time choice is not one of the offered options."""

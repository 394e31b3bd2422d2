from __future__ import annotations

from typing import Iterable, List, Optional


class BorderDeskError(Exception):
    """Base error for BorderDesk. `message` is always safe to show to a user."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class PermissionDeniedError(BorderDeskError):
    """Role is absent or lacks the (action, resource) permission."""

    def __init__(self, message: str, action: Optional[str] = None, resource: Optional[str] = None):
        self.action = action
        self.resource = resource
        super().__init__(message)


class InvalidTransitionError(BorderDeskError):
    """No rule exists for (from, to), or the caller's role is not allowed by it."""

    def __init__(self, from_status: str, to_status: str, message: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(message)


class MissingRequirementError(BorderDeskError):
    """One or more transition preconditions are unmet."""

    def __init__(self, from_status: str, to_status: str, message: str, missing_requirements: Iterable[str]):
        self.from_status = from_status
        self.to_status = to_status
        self.missing_requirements: List[str] = list(missing_requirements)
        super().__init__(message)


class ValidationError(BorderDeskError):
    """Domain input rejected before any mutation (short justification, bad reason, ...)."""


class NotFoundError(BorderDeskError):
    pass


class StorageFailureError(BorderDeskError):
    """Document store read/write failed. Never retried automatically."""


class ConcurrentModificationError(StorageFailureError):
    """Record changed since it was read (version mismatch)."""

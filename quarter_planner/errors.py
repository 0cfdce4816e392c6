"""
Planning Errors and Results

Storage backends raise the exceptions below. Engine operations catch them
and hand back a typed ``Result`` so a failed call never takes down the
planning session.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Optional

logger = logging.getLogger(__name__)


class Outcome(Enum):
    """How an engine operation ended."""
    SUCCESS = "success"
    CONFLICT = "conflict"                    # reload and retry
    VALIDATION_ERROR = "validation_error"    # caller's fault, not attempted
    CONFIGURATION_MISSING = "configuration_missing"
    NOTHING_TO_PUBLISH = "nothing_to_publish"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"                      # transport / collaborator failure


class PlanningError(Exception):
    """Base class for planning failures."""

    outcome = Outcome.UNKNOWN

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(PlanningError):
    """Input rejected before anything was attempted."""
    outcome = Outcome.VALIDATION_ERROR


class ConflictError(PlanningError):
    """Write collided with the current shared state."""
    outcome = Outcome.CONFLICT


class ConfigurationMissing(PlanningError):
    """No effort-rating config exists for the requested unit."""
    outcome = Outcome.CONFIGURATION_MISSING


class NotFoundError(PlanningError):
    """The record a write targets does not exist."""
    outcome = Outcome.NOT_FOUND


class TransportError(PlanningError):
    """The storage collaborator could not be reached or failed."""
    outcome = Outcome.UNKNOWN


@dataclass
class Result:
    """Typed outcome of an engine operation."""
    outcome: Outcome
    value: Any = None
    message: str = ""
    details: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.outcome == Outcome.SUCCESS

    @property
    def retryable(self) -> bool:
        """Conflicts and transport failures may succeed on a later attempt."""
        return self.outcome in (Outcome.CONFLICT, Outcome.UNKNOWN)

    @classmethod
    def success(cls, value: Any = None, message: str = "") -> "Result":
        return cls(Outcome.SUCCESS, value=value, message=message)

    @classmethod
    def from_error(cls, error: PlanningError) -> "Result":
        return cls(error.outcome, message=error.message, details=dict(error.details))

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome.value,
            "message": self.message,
            "details": self.details,
        }


async def to_result(operation: Awaitable, description: str = "operation") -> Result:
    """
    Await a storage call and wrap its value or planning error in a Result.

    Args:
        operation: Awaitable returned by a storage call
        description: Short label used in log lines

    Returns:
        Result.success(value) or the Result matching the raised error
    """
    try:
        value = await operation
    except TransportError as e:
        logger.error("%s failed: %s", description, e.message)
        return Result.from_error(e)
    except ConflictError as e:
        logger.info("%s rejected with conflict: %s", description, e.message)
        return Result.from_error(e)
    except PlanningError as e:
        logger.warning("%s failed (%s): %s", description, e.outcome.value, e.message)
        return Result.from_error(e)
    return Result.success(value)

"""Error codes and exception types reported by cost functions.

Exceptions are raised internally and converted into return values at the
plugin boundary; the host never sees them propagate out of a lifecycle call.
"""

from enum import IntEnum


class ErrorCode(IntEnum):
    """Result codes reported by ``set_motion_plan_request`` (MoveIt numbering)."""
    SUCCESS = 1
    FAILURE = 99999
    INVALID_MOTION_PLAN = -2
    INVALID_GROUP_NAME = -15
    INVALID_ROBOT_STATE = -17
    INVALID_LINK_NAME = -18


class ConfigError(ValueError):
    """Missing, non-numeric or out-of-range configuration field."""


class ContextError(ValueError):
    """Planning context could not be resolved for an episode."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.FAILURE):
        super().__init__(message)
        self.error_code = error_code


class UsageError(ValueError):
    """Operation called in the wrong lifecycle state or with an invalid time-step range."""


class ComputeError(ValueError):
    """Malformed parameter matrix or kinematics failure while scoring."""

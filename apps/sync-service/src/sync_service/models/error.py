"""Error handling models for the sync service.

Defines typed models for error acknowledgements:
- ErrorCode enum for standardized error codes
- ErrorResponse returned to the caller of a rejected control op

Errors are never broadcast to the room; they are returned only to the
participant that issued the request.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Standardized error codes.

    - Control errors: authorization and validation (not retryable)
    - Client-internal errors: degrade correction quality, never surfaced
    """

    # Control errors (not retryable)
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_TRACK = "INVALID_TRACK"
    NO_TRACK_LOADED = "NO_TRACK_LOADED"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    ROOM_NOT_FOUND = "ROOM_NOT_FOUND"
    NOT_IN_ROOM = "NOT_IN_ROOM"

    # Client-internal errors
    CALIBRATION_FAILED = "CALIBRATION_FAILED"
    STALE_BEACON = "STALE_BEACON"

    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def is_retryable(self) -> bool:
        """Check if this error code is retryable."""
        return self in RETRYABLE_ERRORS

    @property
    def requires_refresh(self) -> bool:
        """Whether the client should refresh room state instead of retrying."""
        return self in REFRESH_ERRORS

    @property
    def default_message(self) -> str:
        """Get default human-readable message for this error code."""
        return ERROR_MESSAGES.get(self, f"Error: {self.value}")


RETRYABLE_ERRORS: set[ErrorCode] = {
    ErrorCode.CALIBRATION_FAILED,
    ErrorCode.INTERNAL_ERROR,
}

# A stale "I am the host" view on the client is fixed by refreshing, not retrying
REFRESH_ERRORS: set[ErrorCode] = {
    ErrorCode.UNAUTHORIZED,
    ErrorCode.NOT_IN_ROOM,
}

ERROR_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.UNAUTHORIZED: "Only the room host can control playback",
    ErrorCode.INVALID_TRACK: "Track has no playable URL",
    ErrorCode.NO_TRACK_LOADED: "No track is loaded in this room",
    ErrorCode.INVALID_PAYLOAD: "Invalid message payload",
    ErrorCode.ROOM_NOT_FOUND: "Room not found",
    ErrorCode.NOT_IN_ROOM: "Participant is not in any room",
    ErrorCode.CALIBRATION_FAILED: "All clock probes in the round failed",
    ErrorCode.STALE_BEACON: "Beacon is older than the one currently applied",
    ErrorCode.INTERNAL_ERROR: "Internal server error",
}


class ErrorResponse(BaseModel):
    """Error acknowledgement payload.

    Returned as the Socket.IO acknowledgement of a rejected request.
    """

    success: bool = Field(default=False, description="Always false for errors")
    code: str = Field(description="Error code identifier")
    message: str = Field(min_length=1, description="Human-readable error description")
    retryable: bool = Field(description="Whether the error is transient and retryable")
    refresh_state: bool = Field(
        default=False,
        description="Whether the client should re-fetch room state before acting again",
    )
    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details",
    )

    @classmethod
    def from_error_code(
        cls,
        code: ErrorCode,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> "ErrorResponse":
        """Create error response from standardized error code.

        Args:
            code: ErrorCode enum value
            message: Optional custom message (defaults to code's default)
            details: Optional additional details

        Returns:
            ErrorResponse with appropriate fields set
        """
        return cls(
            code=code.value,
            message=message or code.default_message,
            retryable=code.is_retryable,
            refresh_state=code.requires_refresh,
            details=details,
        )

    @classmethod
    def invalid_payload(cls, reason: str) -> "ErrorResponse":
        """Create INVALID_PAYLOAD error."""
        return cls.from_error_code(
            ErrorCode.INVALID_PAYLOAD,
            message=f"Invalid payload: {reason}",
        )

    @classmethod
    def internal_error(cls) -> "ErrorResponse":
        """Create INTERNAL_ERROR error."""
        return cls.from_error_code(ErrorCode.INTERNAL_ERROR)

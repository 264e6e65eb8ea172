"""Exception types raised inside the sync engine.

Each exception carries an ErrorCode so the Socket.IO handlers can turn it
into an ErrorResponse acknowledgement for the caller.
"""

from sync_service.models.error import ErrorCode, ErrorResponse


class SyncError(Exception):
    """Base class for engine errors.

    Attributes:
        code: Standardized error code.
        message: Human-readable error message.
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str | None = None, code: ErrorCode | None = None) -> None:
        if code is not None:
            self.code = code
        self.message = message or self.code.default_message
        super().__init__(self.message)

    def to_response(self) -> ErrorResponse:
        """Convert to an ErrorResponse acknowledgement."""
        return ErrorResponse.from_error_code(self.code, message=self.message)


class UnauthorizedError(SyncError):
    """A non-host participant attempted a mutating control op."""

    code = ErrorCode.UNAUTHORIZED


class InvalidTrackError(SyncError):
    """Track reference is missing a playable URL."""

    code = ErrorCode.INVALID_TRACK


class NoTrackLoadedError(SyncError):
    """Playback control issued while the room has no track."""

    code = ErrorCode.NO_TRACK_LOADED


class RoomNotFoundError(SyncError):
    """Requested room does not exist."""

    code = ErrorCode.ROOM_NOT_FOUND


class NotInRoomError(SyncError):
    """Connection is not a member of any room."""

    code = ErrorCode.NOT_IN_ROOM


class CalibrationFailedError(SyncError):
    """Every probe in a calibration round failed."""

    code = ErrorCode.CALIBRATION_FAILED


class StaleBeaconError(SyncError):
    """Beacon is older than the one currently applied."""

    code = ErrorCode.STALE_BEACON


_ERRORS_BY_CODE: dict[str, type[SyncError]] = {
    cls.code.value: cls
    for cls in (
        UnauthorizedError,
        InvalidTrackError,
        NoTrackLoadedError,
        RoomNotFoundError,
        NotInRoomError,
        CalibrationFailedError,
        StaleBeaconError,
    )
}


def error_from_response(data: dict) -> SyncError:
    """Rebuild a SyncError from an error acknowledgement received by a client.

    Args:
        data: ErrorResponse payload as a dict.

    Returns:
        The matching SyncError subclass instance (SyncError for unknown codes).
    """
    code = data.get("code", ErrorCode.INTERNAL_ERROR.value)
    message = data.get("message")
    error_cls = _ERRORS_BY_CODE.get(code)
    if error_cls is not None:
        return error_cls(message)
    try:
        return SyncError(message, code=ErrorCode(code))
    except ValueError:
        return SyncError(message)

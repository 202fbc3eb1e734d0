"""Domain error taxonomy.

Every domain failure is raised as an `AccessHubError` carrying a
human-readable message and an application response code. The web boundary
translates these into the response envelope.
"""

from __future__ import annotations

from accesshub.core.responses import ResponseCode


class AccessHubError(Exception):
    """Base class for errors that are safe to show to API callers."""

    code: int = ResponseCode.BAD_REQUEST

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class NotFound(AccessHubError):
    code = ResponseCode.NOT_FOUND


class InvalidStatus(AccessHubError):
    code = ResponseCode.BAD_REQUEST


class ValidationFailed(AccessHubError):
    code = ResponseCode.BAD_REQUEST


class DoorInactive(AccessHubError):
    code = ResponseCode.BAD_REQUEST


class AlreadyProcessed(AccessHubError):
    code = ResponseCode.BAD_REQUEST


class NoOpRejected(AccessHubError):
    code = ResponseCode.BAD_REQUEST


class Conflict(AccessHubError):
    code = ResponseCode.CONFLICT


class AuthenticationRequired(AccessHubError):
    code = ResponseCode.UNAUTHORIZED


class InvalidCredentials(AccessHubError):
    code = ResponseCode.INVALID_CREDENTIALS


class PermissionDenied(AccessHubError):
    code = ResponseCode.INSUFFICIENT_PERMISSIONS


class ServerError(AccessHubError):
    code = ResponseCode.INTERNAL_ERROR


class DeviceSyncError(Exception):
    """Device platform call failed.

    Never reaches the web boundary: `DeviceSync` converts it into a
    `SyncResult` that callers log and discard.
    """

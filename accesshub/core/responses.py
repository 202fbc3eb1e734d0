"""Application response codes and the `{message, r, data}` envelope.

Codes below 1000 mirror HTTP status codes. Custom 1000-series codes carry
authentication nuances and are mapped onto an HTTP status by a fixed table.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any


class ResponseCode(IntEnum):
    # Success
    SUCCESS = 200
    CREATED = 201
    ACCEPTED = 202
    NO_CONTENT = 204

    # Client errors
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    CONFLICT = 409
    VALIDATION_ERROR = 422
    TOO_MANY_REQUESTS = 429

    # Server errors
    INTERNAL_ERROR = 500
    NOT_IMPLEMENTED = 501
    SERVICE_UNAVAILABLE = 503

    # Custom (1000+)
    TOKEN_EXPIRED = 1001
    INACTIVE_ACCOUNT = 1002
    PENDING_APPROVAL = 1003
    INVALID_CREDENTIALS = 1004
    INSUFFICIENT_PERMISSIONS = 1005
    INSUFFICIENT_ROLE = 1006


_CUSTOM_CODE_STATUS = {
    ResponseCode.TOKEN_EXPIRED: 401,
    ResponseCode.INACTIVE_ACCOUNT: 401,
    ResponseCode.PENDING_APPROVAL: 401,
    ResponseCode.INVALID_CREDENTIALS: 401,
    ResponseCode.INSUFFICIENT_PERMISSIONS: 403,
    ResponseCode.INSUFFICIENT_ROLE: 403,
}


def http_status_for(code: int) -> int:
    """Map an application response code to the HTTP status it is sent with."""
    if code >= 1000:
        return _CUSTOM_CODE_STATUS.get(code, 400)
    return int(code)


def build_envelope(message: str, code: int = ResponseCode.SUCCESS, data: Any = None) -> dict:
    envelope: dict[str, Any] = {"message": message, "r": int(code)}
    if data is not None:
        envelope["data"] = data
    return envelope

"""Door request lifecycle (create, approve, reject) and queries."""

from accesshub.requests.service import (
    DoorRequestService,
    get_door_request_status,
    get_request,
    list_requests,
    list_requests_for_door,
)

__all__ = [
    "DoorRequestService",
    "get_door_request_status",
    "get_request",
    "list_requests",
    "list_requests_for_door",
]

from enum import StrEnum


class ItemState(StrEnum):
    UNREQUESTED = "unrequested"
    PENDING = "pending"
    DISPATCHED = "dispatched"
    RESOLVED = "resolved"


class FailureReason(StrEnum):
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    MISSING_FROM_RESPONSE = "missing_from_response"
    WAITER_TIMEOUT = "waiter_timeout"

"""
gw2dash-specific runtime exceptions.
"""

from __future__ import annotations


class Gw2DashError(Exception):
    """Base class for all gw2dash errors."""


class InvalidIdentifier(Gw2DashError, ValueError):
    """
    Raised when an item identifier is not a positive integer.

    Parameters
    ----------
    item_id : object
        Offending identifier.
    """

    def __init__(self, item_id: object) -> None:
        self.item_id = item_id
        super().__init__(f"Item id must be a positive integer, got {item_id!r}")


class UpstreamUnavailable(Gw2DashError, RuntimeError):
    """
    Raised when a call to the Guild Wars 2 API fails.

    Parameters
    ----------
    path : str
        API path that was requested.
    status_code : int | None, optional
        HTTP status code, ``None`` for network errors and timeouts.
    detail : str | None, optional
        Error text returned by the API or the transport.
    """

    def __init__(
        self,
        path: str,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        self.path = path
        self.status_code = status_code
        self.detail = detail
        message = f"GW2 API error for {path}"
        if status_code is not None:
            message += f": {status_code}"
        if detail:
            message += f" - {detail}"
        super().__init__(message)


class WaiterTimeout(Gw2DashError, TimeoutError):
    """
    Describes a waiter that gave up before its item was resolved.

    Parameters
    ----------
    item_id : int
        Item the waiter was waiting for.
    timeout_seconds : float
        Wait ceiling that was exceeded.
    """

    def __init__(self, item_id: int, timeout_seconds: float) -> None:
        self.item_id = item_id
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Item {item_id} was not resolved within {timeout_seconds}s")


class MissingApiKey(Gw2DashError, ValueError):
    """Raised when an authenticated endpoint is used without an API key."""

    def __init__(self) -> None:
        super().__init__(
            "API key not found. Either set GW2_API_KEY in the environment "
            "or provide it through the --api-key option."
        )

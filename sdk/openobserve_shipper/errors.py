"""Exceptions raised by the OpenObserve shipper."""

from __future__ import annotations


class ShipperError(Exception):
    """Base class for all shipper errors."""


class ConfigurationError(ShipperError):
    """Raised at construction when a required option is missing or empty."""


class DeliveryFailure(ShipperError):
    """A batch could not be delivered and has been dropped.

    Exactly one of ``status_code`` (the endpoint answered with a non-2xx
    status) or ``cause`` (the request never completed) is set.
    """

    def __init__(
        self,
        batch_size: int,
        *,
        status_code: int | None = None,
        reason: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.batch_size = batch_size
        self.status_code = status_code
        self.reason = reason
        self.cause = cause
        if status_code is not None:
            detail = f"HTTP {status_code} {reason or ''}".rstrip()
        else:
            detail = f"{type(cause).__name__}: {cause}"
        super().__init__(f"Failed to send {batch_size} log entries: {detail}")

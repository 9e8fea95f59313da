# Overview: Domain error taxonomy for the core-exchange engine; each error knows its HTTP status.

from __future__ import annotations


class CoreExchangeError(Exception):
    """Base class for errors raised by the reconciliation and pricing engine."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class InvalidPrice(CoreExchangeError):
    """400-level: non-positive unit price given to the pricing calculator."""


class InvalidPairing(CoreExchangeError):
    """400-level: a link between an entry item and a debt is structurally invalid."""


class InsufficientDebt(CoreExchangeError):
    """409-level: attempted return exceeds the recorded core debt."""

    status_code = 409


class ExceedsAvailableDebt(CoreExchangeError):
    """409-level: a manual batch requests more cores than are currently owed."""

    status_code = 409


class InvalidState(CoreExchangeError):
    """409-level: the record's current status does not allow the operation."""

    status_code = 409


class NotFound(CoreExchangeError):
    """404-level: missing order, order item, entry, entry item, product or client."""

    status_code = 404


class StoreUnavailable(CoreExchangeError):
    """503-level: the relational store could not be reached or failed mid-operation."""

    status_code = 503

# Overview: Domain error taxonomy shared by services and routes.

from __future__ import annotations


class VendSysError(Exception):
    """Base class for domain errors. `status_code` is the HTTP mapping."""
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": str(self)}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(VendSysError):
    """Lookup miss."""
    status_code = 404


class ConflictError(VendSysError):
    """Uniqueness violation (duplicate machine id, sku, email, transaction id)."""
    status_code = 400


class GatewayUnavailableError(VendSysError):
    """The payment gateway call failed; nothing was committed locally."""
    status_code = 502


class TransportFailureError(VendSysError):
    """
    An alert could not be delivered.

    Never surfaced to API callers; the dispatcher logs it and moves on.
    """
    status_code = 500


class StoreUnavailableError(VendSysError):
    """The database could not be reached after retries."""
    status_code = 503

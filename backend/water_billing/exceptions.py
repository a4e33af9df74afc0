"""
Billing Errors — Typed failures raised by services and rendered by the API.
"""


class BillingError(Exception):
    """Base error carrying the HTTP status it maps to."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(BillingError):
    status_code = 400


class NotFound(BillingError):
    status_code = 404


class UpstreamAuthError(BillingError):
    """Provider token exchange failed."""
    status_code = 502


class UpstreamRejected(BillingError):
    """Provider answered but refused the request."""
    status_code = 400


class UpstreamUnavailable(BillingError):
    """Provider unreachable, timed out or answered with a server error."""
    status_code = 503


class StoreError(BillingError):
    status_code = 503

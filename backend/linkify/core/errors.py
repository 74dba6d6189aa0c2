"""
Error taxonomy shared by the services and the HTTP layer.

Services raise these; `main.py` maps every one of them to a JSON body of the
form ``{"error": "..."}`` with the class's status code.
"""
from __future__ import annotations


class LinkifyError(Exception):
    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class ClientInputError(LinkifyError):
    """A required request field is missing or malformed."""

    status_code = 400
    public_message = "Invalid request"


class AuthenticationError(LinkifyError):
    status_code = 401
    public_message = "Authentication failed"


class NotFoundError(LinkifyError):
    status_code = 404
    public_message = "Not found"


class UpstreamError(LinkifyError):
    """
    The completion endpoint was unreachable or answered with an error.

    The message returned to clients is always generic; provider detail is
    logged at the call site. `retryable` separates transport/timeout/5xx
    failures from provider-side 4xx rejections.
    """

    public_message = "Analysis failed"

    def __init__(self, message: str | None = None, *, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class NormalizationError(LinkifyError):
    """Model output could not be turned into the expected JSON shape."""

    public_message = "Failed to parse analysis"


class StoreError(LinkifyError):
    """Constraint violation or connectivity failure in the record store."""

    public_message = "Database error"

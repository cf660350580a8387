"""
Error taxonomy for the News Proxy.

Every error raised inside an invocation is a ProxyError carrying the HTTP
status and a client-safe message. The entry point converts them into a
NormalizedResult, so nothing in this tree ever reaches the caller as a
stack trace.
"""

from typing import Any, Dict, Optional


REDACTED = "***"


def redact_secret(text: str, secret: Optional[str]) -> str:
    """Replace every occurrence of ``secret`` in ``text``."""
    if not secret:
        return text
    return text.replace(secret, REDACTED)


class ProxyError(Exception):
    """
    Base class for invocation failures.

    Attributes:
        message: Client-safe error text, returned as the ``error`` field
        details: Optional extra information, returned as ``details``
    """

    status_code: int = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ConfigurationError(ProxyError):
    """Server-side configuration is missing or unusable (e.g. no credential)."""

    status_code = 500


class ValidationError(ProxyError):
    """Malformed or unsupported client input. Raised before any network call."""

    status_code = 400


class MethodNotAllowedError(ValidationError):
    status_code = 405


class UpstreamTransientError(ProxyError):
    """
    Non-2xx upstream response or transport failure.

    Retried by the dispatcher; surfaces as 502 once attempts are exhausted.
    ``upstream_status`` is None for transport failures.
    """

    status_code = 502

    def __init__(self, message: str, upstream_status: Optional[int] = None, details: Any = None):
        super().__init__(message, details=details)
        self.upstream_status = upstream_status


class UpstreamLogicError(UpstreamTransientError):
    """Upstream answered 2xx with an unusable body. Handled like a transient error."""

"""
Error taxonomy for the honeypot service.

Only ValidationError, AuthError, RateLimitError and SessionNotFoundError ever
reach an HTTP caller. Upstream and report errors are absorbed where they occur.
"""


class HoneypotError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ValidationError(HoneypotError):
    """Missing or malformed request input."""
    status_code = 400


class AuthError(HoneypotError):
    """Missing or wrong shared-secret header."""
    status_code = 401


class SessionNotFoundError(HoneypotError):
    status_code = 404


class RateLimitError(HoneypotError):
    """Caller exceeded the per-IP request budget."""
    status_code = 429


class UpstreamError(HoneypotError):
    """The language model call failed or produced unusable output."""
    status_code = 502


class UpstreamTimeoutError(UpstreamError):
    status_code = 504


class ReportDeliveryError(HoneypotError):
    """The reporting callback could not be delivered."""
    status_code = 502

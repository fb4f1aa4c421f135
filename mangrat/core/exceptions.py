"""Custom exceptions for the Mangrat chat backend"""

from typing import Optional


class MangratError(Exception):
    """Base exception for Mangrat"""

    status_code = 500
    public_message: Optional[str] = None

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(message)

    def client_message(self) -> str:
        """Message that is safe to hand to an untrusted caller."""
        return self.public_message or self.message


class ValidationError(MangratError):
    """Malformed or missing input"""
    status_code = 400


class AuthError(MangratError):
    """Bad credentials or a missing, unknown or expired session"""
    status_code = 401


class ConflictError(MangratError):
    """Duplicate unique field or an operation already in progress"""
    status_code = 409


class NotFoundError(MangratError):
    """Referenced identity does not exist"""
    status_code = 404


class StorageError(MangratError):
    """Repository unavailable or query failure"""
    status_code = 503
    public_message = "Storage is temporarily unavailable. Please try again."


class UpstreamError(MangratError):
    """Error from the external text-generation service"""
    status_code = 502
    public_message = "The AI model could not respond. Please try again."

    def __init__(self, message: str, status: Optional[int] = None, retryable: bool = False):
        self.status = status
        self.retryable = retryable
        super().__init__(message)


class UpstreamTimeoutError(UpstreamError):
    """External text-generation service exceeded its deadline"""
    status_code = 504
    public_message = "The AI model took too long to respond. Please try again."

    def __init__(self, message: str):
        super().__init__(message, status=None, retryable=False)


class ConfigError(MangratError):
    """Configuration error"""
    pass

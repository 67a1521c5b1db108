"""
Error taxonomy for the vetting engine

InvalidArgumentError is raised synchronously by pure functions before any I/O.
NotFoundError and UpstreamUnavailableError describe collaborator outcomes; the
pipeline converts all of them into structured failure responses.
"""


class VettingError(Exception):
    """Base exception for vetting errors"""

    code: str = "VETTING_ERROR"


class InvalidArgumentError(VettingError, ValueError):
    """Raised when an argument or configuration value is out of range

    Attributes:
        field: The field that failed validation
        code: Error code for programmatic handling
        suggestion: Optional suggestion for fixing the error
    """
    code = "INVALID_ARGUMENT"

    def __init__(self, message: str, field: str = "unknown", code: str = "INVALID_ARGUMENT", suggestion: str = ""):
        self.field = field
        self.code = code
        self.suggestion = suggestion
        super().__init__(message)


class ConfigurationError(InvalidArgumentError):
    """Raised when configuration is invalid"""

    def __init__(self, message: str, field: str = "config", suggestion: str = ""):
        super().__init__(message, field=field, code="INVALID_CONFIGURATION", suggestion=suggestion)


class NotFoundError(VettingError):
    """Raised when an organization has no resolvable profile"""
    code = "NOT_FOUND"


class UpstreamUnavailableError(VettingError):
    """Raised when a required collaborator could not be reached"""
    code = "UPSTREAM_UNAVAILABLE"

    def __init__(self, message: str, source: str = "unknown"):
        self.source = source
        super().__init__(message)


class CacheError(VettingError):
    """Raised when the result cache cannot be read or written"""
    code = "CACHE_ERROR"

"""
Exception hierarchy for the generation flow
"""
from typing import Optional


class StudioError(Exception):
    """Base class for all product studio errors"""
    pass


class ValidationError(StudioError):
    """Raised when a generation request is malformed"""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class BackendCallFailure(StudioError):
    """
    Raised by a backend client when a single call fails.

    Categories: auth, quota, network, unknown
    """

    AUTH = "auth"
    QUOTA = "quota"
    NETWORK = "network"
    UNKNOWN = "unknown"

    def __init__(self, message: str, category: str = UNKNOWN, status: Optional[int] = None):
        self.category = category
        self.status = status
        super().__init__(message)


class GenerationError(StudioError):
    """Raised when a generation request fails as a whole"""
    pass


class EmptyResultError(GenerationError):
    """Raised when every call in a batch failed or returned nothing usable"""

    def __init__(self, requested: int, failures: Optional[dict] = None):
        self.requested = requested
        self.failures = failures or {}
        super().__init__(f"All {requested} generation calls failed or returned no usable output")


class ProbeFailure(StudioError):
    """Raised inside the status prober when a probe call does not succeed"""
    pass

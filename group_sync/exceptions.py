"""
Exception hierarchy for Group Sync.
"""

from typing import Iterable


class GroupSyncError(Exception):
    """Base exception for group sync errors."""
    pass


class ConfigurationError(GroupSyncError):
    """Raised when the configuration file is invalid or missing required fields."""
    pass


class ConfigValidationError(GroupSyncError):
    """
    Aggregate of every configuration or secret problem found for a provider.

    Raised before any network call is made.
    """

    def __init__(self, errors: Iterable[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class SecretNotFoundError(GroupSyncError):
    """Raised when a referenced credential secret does not exist."""
    pass


class ProviderError(GroupSyncError):
    """Base exception for provider adapter errors."""
    pass


class AuthenticationError(ProviderError):
    """Raised when authenticating against a provider fails."""
    pass


class TransportError(ProviderError):
    """Raised when a group or member listing call fails."""

    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        super().__init__(message)

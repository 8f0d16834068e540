"""
Error taxonomy for the league dashboard.

Only configuration and authentication failures are allowed to reach the top
level of a run. Transient catalog failures are converted into per-item
failures by the batch drivers, and data-integrity problems are logged and
skipped.
"""


class LeagueDashboardError(Exception):
    """Base class for all league dashboard errors"""


class ConfigurationError(LeagueDashboardError):
    """Raised when a required setting (connection string, credentials) is missing"""


class AuthenticationError(LeagueDashboardError):
    """Raised when the catalog API rejects or cannot issue client credentials"""


class TransientFetchError(LeagueDashboardError):
    """Raised when a catalog request keeps failing after all retry attempts"""

    def __init__(self, attempts: int, last_error: Exception):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Request failed after {attempts} attempts. Last error: {last_error}"
        )


class DataIntegrityError(LeagueDashboardError):
    """Raised when a row violates a write-time integrity rule"""

    def __init__(self, message: str, document_id=None):
        self.document_id = document_id
        super().__init__(message)

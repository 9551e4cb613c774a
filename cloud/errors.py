# cloud/errors.py


class CloudSaverError(Exception):
    """Base class for every error raised by cloud saver components."""


class ConfigError(CloudSaverError):
    """Invalid or missing configuration. Raised at construction, never retried."""


class AuthError(CloudSaverError):
    """Signing or token exchange failed."""


class TokenExchangeError(AuthError):
    """The OAuth2 token endpoint rejected the request or returned an unusable token."""


class ProviderError(CloudSaverError):
    """The cloud control plane returned an error."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class OperationTimeoutError(CloudSaverError):
    """A stop-and-wait operation did not finish before its deadline."""


class OperationCancelledError(CloudSaverError):
    """The caller cancelled the operation before it finished."""


class MetricsError(CloudSaverError):
    """The metrics endpoint could not be scraped."""

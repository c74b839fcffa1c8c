"""Exception hierarchy shared by every reposync component."""

from typing import Optional


class ReposyncError(Exception):
    """Base class for all reposync errors."""
    pass


class InvalidReferenceError(ReposyncError):
    """Raised when a repository reference cannot be parsed into owner/repo."""
    pass


class LocalIOError(ReposyncError):
    """Raised when a primary local read/write step fails."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class ManifestCorruptError(ReposyncError):
    """Raised internally when a stored manifest cannot be decoded.

    The state store logs and absorbs this error; callers see an empty manifest.
    """
    pass


class RemoteRejectedError(ReposyncError):
    """Raised when the remote API answers with an error status."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class AuthenticationError(RemoteRejectedError):
    """Raised when the credential is missing, invalid or expired."""
    pass


class NotFoundError(RemoteRejectedError):
    """Raised when the repository, branch or object does not exist."""
    pass


class RateLimitError(RemoteRejectedError):
    """Raised when the API rate limit is exhausted."""

    def __init__(self, message: str, status: Optional[int] = None, retry_after: Optional[int] = None):
        super().__init__(message, status)
        self.retry_after = retry_after


class InvalidResponseError(RemoteRejectedError):
    """Raised when a remote response does not have the expected shape."""
    pass


class NetworkFailureError(ReposyncError):
    """Raised when the remote could not be reached at all."""
    pass


class ConfigurationError(ReposyncError):
    """Raised when configuration loading fails."""
    pass


class SchedulerError(ReposyncError):
    """Raised when scheduler operations fail."""
    pass

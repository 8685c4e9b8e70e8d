"""Project-level exception types.

The taxonomy mirrors how failures are retried:

- ConfigurationError: missing operator configuration; fatal, never retried.
- TransientError: network, throttling, deadlines; retried with backoff.
- MissingDependencyError: absent secret/reference; retried until it appears.
- InvalidManifestError: unparseable manifest; retried, but only a source fix
  resolves it.
- ConflictError: optimistic-concurrency failure on write; retried silently.
"""

from __future__ import annotations

from kubernetes.client.rest import ApiException


class OperatorError(Exception):
    """Base exception for reconciliation errors."""


class ConfigurationError(OperatorError):
    """Raised when the operator itself is misconfigured."""


class GitRepoPathNotSpecifiedError(ConfigurationError):
    """Raised when the GIT_REPO_PATH environment variable is missing."""

    def __init__(self) -> None:
        super().__init__("the GIT_REPO_PATH environment variable was not specified")


class TransientError(OperatorError):
    """Raised for failures expected to clear on retry."""


class DeadlineExceededError(TransientError):
    """Raised when a reconcile pass runs past its deadline."""


class GitSyncError(TransientError):
    """Raised when cloning, fetching or checking out the manifest repository fails."""


class CatalogError(TransientError):
    """Raised when the external catalog index cannot be queried."""


class StoreError(OperatorError):
    """Raised when a call against the declarative store fails."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class NotFoundError(StoreError):
    """Raised when a requested object does not exist in the store."""


class ConflictError(StoreError):
    """Raised when a write is rejected because of a stale resource version."""


class TransientStoreError(StoreError, TransientError):
    """Raised when the store is throttling or temporarily unavailable."""


class MissingDependencyError(OperatorError):
    """Raised when a dependency the pipeline needs is absent."""


class SecretNotFoundError(MissingDependencyError):
    """Raised when a required secret does not exist."""


class InvalidSecretError(MissingDependencyError):
    """Raised when a secret lacks the expected key or its value is empty."""


class ReleaseNotFoundError(MissingDependencyError):
    """Raised when no repository reference matches the requested release."""


class InvalidManifestError(OperatorError):
    """Raised when a manifest file cannot be parsed into an object."""


def from_api_exception(error: ApiException) -> StoreError:
    """Map a raw kubernetes ApiException to a project-level StoreError.

    404 is mapped to NotFoundError, 409 to ConflictError, 429 and 5xx to
    TransientStoreError, everything else to StoreError.

    Args:
        error: Client exception to convert.

    Returns:
        StoreError subclass instance carrying the HTTP status.
    """
    status = error.status
    message = f"{error.status} {error.reason}".strip()
    if status == 404:
        return NotFoundError(message, status)
    if status == 409:
        return ConflictError(message, status)
    if status == 429 or (status is not None and status >= 500):
        return TransientStoreError(message, status)
    return StoreError(message, status)


def is_fatal(error: BaseException) -> bool:
    """Return True when an error requires operator intervention rather than a retry."""
    return isinstance(error, ConfigurationError)

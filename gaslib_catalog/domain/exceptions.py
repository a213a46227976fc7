from enum import Enum
from typing import Optional


class FailureReason(str, Enum):
    """Machine-readable reason attached to every failed ingestion."""

    INVALID_REFERENCE = "invalid_reference"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_NETWORK_ERROR = "transient_network_error"
    EXTERNAL_SERVICE_UNAVAILABLE = "external_service_unavailable"
    MISSING_COMMIT_DATA = "missing_commit_data"
    NO_SCRIPT_ID = "no_script_id"
    DUPLICATE_SCRIPT_ID = "duplicate_script_id"
    DUPLICATE_REPOSITORY_URL = "duplicate_repository_url"
    LIBRARY_NOT_FOUND = "library_not_found"
    UNEXPECTED = "unexpected"


class CatalogException(Exception):
    """Base exception for all catalog-related errors."""
    reason: FailureReason = FailureReason.UNEXPECTED
    default_message = "Unexpected error occurred."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidReference(CatalogException):
    """Raised when a repository reference cannot be resolved to owner/repo."""
    reason = FailureReason.INVALID_REFERENCE
    default_message = "The GitHub repository URL format is incorrect."


class RepositoryNotFound(CatalogException):
    """Raised when GitHub answers 404 for a repository."""
    reason = FailureReason.NOT_FOUND
    default_message = "The specified GitHub repository was not found."


class RateLimited(CatalogException):
    """Raised when GitHub rejects a request with 403/429."""
    reason = FailureReason.RATE_LIMITED
    default_message = "GitHub API rate limit reached. Please try again later."

    def __init__(self, retry_after: Optional[float] = None, message: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(message)


class TransientNetworkError(CatalogException):
    """Raised for connection errors, timeouts and unexpected HTTP statuses."""
    reason = FailureReason.TRANSIENT_NETWORK_ERROR
    default_message = "Network error occurred."


class ExternalServiceUnavailable(CatalogException):
    """Raised once retries against GitHub are exhausted."""
    reason = FailureReason.EXTERNAL_SERVICE_UNAVAILABLE
    default_message = "GitHub API is unavailable. Please try again later."


class MissingCommitData(CatalogException):
    reason = FailureReason.MISSING_COMMIT_DATA
    default_message = "Failed to fetch last commit date."


class NoScriptId(CatalogException):
    reason = FailureReason.NO_SCRIPT_ID
    default_message = "No GAS script ID or web app URL was found in the README."


class DuplicateScriptId(CatalogException):
    reason = FailureReason.DUPLICATE_SCRIPT_ID
    default_message = "This script ID is already registered."


class DuplicateRepositoryUrl(CatalogException):
    reason = FailureReason.DUPLICATE_REPOSITORY_URL
    default_message = "This repository is already registered."


class LibraryNotFound(CatalogException):
    reason = FailureReason.LIBRARY_NOT_FOUND
    default_message = "Library not found."

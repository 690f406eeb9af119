"""Shared error types for the image release flow.

This module defines the exception hierarchy used while turning an image
event into manifest commits and pull requests, covering configuration
lookups, GitHub API failures, commit construction and pull request
publishing.

Exceptions
----------
FlowError
FlowConfigError
ApplicationNotFoundError
GitHubAPIError
CommitError
NoChangesError
PullRequestError
NotificationError
"""

from __future__ import annotations


class FlowError(Exception):
    """Base error for image release operations."""


class FlowConfigError(FlowError):
    """Raised when the application catalog is missing or malformed."""


class ApplicationNotFoundError(FlowConfigError):
    """Raised when no configured application matches an image."""


class GitHubAPIError(FlowError):
    """Raised when a GitHub API request fails.

    Parameters
    ----------
    message
        Human-readable error message describing the failure.
    status_code
        HTTP status returned by GitHub, or ``None`` for transport errors.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CommitError(FlowError):
    """Raised when a release commit cannot be created."""


class NoChangesError(CommitError):
    """Raised when no manifest file matched any rewrite rule."""


class PullRequestError(FlowError):
    """Raised when a pull request cannot be opened."""


class NotificationError(FlowError):
    """Raised when the release summary cannot be delivered."""

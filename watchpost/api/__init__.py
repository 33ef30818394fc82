"""Clients for the external services watchpost monitors."""

from watchpost.api.github import CheckSuite, CommitStatus, GitHubClient, PullRequest
from watchpost.api.telnyx import TelnyxClient

__all__ = [
    "CheckSuite",
    "CommitStatus",
    "GitHubClient",
    "PullRequest",
    "TelnyxClient",
]

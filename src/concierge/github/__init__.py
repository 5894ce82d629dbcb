"""GitHub REST client and webhook payload records."""

from .client import GitHubClient, GitHubError, Transport
from .models import ISSUE_COMMENT_EVENT, ISSUES_EVENT, Comment, Issue, IssueEvent, Repository, User

__all__ = [
    "Comment",
    "GitHubClient",
    "GitHubError",
    "ISSUES_EVENT",
    "ISSUE_COMMENT_EVENT",
    "Issue",
    "IssueEvent",
    "Repository",
    "Transport",
    "User",
]

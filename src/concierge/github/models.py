"""Lightweight records for the GitHub resources the bot reads and writes."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional

ISSUES_EVENT = "issues"
ISSUE_COMMENT_EVENT = "issue_comment"

PROCESSED_ACTIONS = {
    ISSUES_EVENT: frozenset({"opened", "edited", "reopened"}),
    ISSUE_COMMENT_EVENT: frozenset({"created"}),
}


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse GitHub's ISO-8601 timestamps (``2024-05-01T12:00:00Z``)."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


@dataclass(slots=True)
class User:
    login: str = ""
    type: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> "User":
        data = _mapping(payload)
        return cls(login=str(data.get("login") or ""), type=str(data.get("type") or ""))


@dataclass(slots=True)
class Comment:
    id: int
    body: str = ""
    user: User = field(default_factory=User)
    created_at: Optional[datetime] = None
    html_url: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> "Comment":
        data = _mapping(payload)
        return cls(
            id=int(data.get("id") or 0),
            body=str(data.get("body") or ""),
            user=User.from_payload(data.get("user")),
            created_at=parse_timestamp(data.get("created_at")),
            html_url=str(data.get("html_url") or ""),
        )


@dataclass(slots=True)
class Issue:
    number: int
    title: str = ""
    body: str = ""
    user: User = field(default_factory=User)
    state: str = ""
    labels: List[str] = field(default_factory=list)
    html_url: str = ""
    is_pull_request: bool = False

    @classmethod
    def from_payload(cls, payload: Any) -> "Issue":
        data = _mapping(payload)
        labels = []
        for label in data.get("labels") or []:
            if isinstance(label, Mapping):
                labels.append(str(label.get("name") or ""))
            elif isinstance(label, str):
                labels.append(label)
        return cls(
            number=int(data.get("number") or 0),
            title=str(data.get("title") or ""),
            body=str(data.get("body") or ""),
            user=User.from_payload(data.get("user")),
            state=str(data.get("state") or ""),
            labels=[label for label in labels if label],
            html_url=str(data.get("html_url") or ""),
            is_pull_request=bool(data.get("pull_request")),
        )


@dataclass(slots=True)
class Repository:
    name: str
    owner: str
    full_name: str = ""
    default_branch: str = "main"

    @classmethod
    def from_payload(cls, payload: Any) -> "Repository":
        data = _mapping(payload)
        owner = User.from_payload(data.get("owner")).login
        name = str(data.get("name") or "")
        full_name = str(data.get("full_name") or "")
        if full_name and (not owner or not name) and "/" in full_name:
            owner, name = full_name.split("/", 1)
        return cls(
            name=name,
            owner=owner,
            full_name=full_name or f"{owner}/{name}",
            default_branch=str(data.get("default_branch") or "main"),
        )


@dataclass(slots=True)
class IssueEvent:
    """A webhook delivery reduced to the pieces the triage flow uses."""

    name: str
    action: str
    issue: Issue
    repository: Repository
    comment: Optional[Comment] = None

    @property
    def is_comment(self) -> bool:
        return self.name == ISSUE_COMMENT_EVENT and self.comment is not None

    @property
    def actor(self) -> str:
        if self.comment is not None:
            return self.comment.user.login
        return self.issue.user.login

    @classmethod
    def from_payload(cls, name: str, payload: Mapping[str, Any]) -> "IssueEvent":
        comment_payload = payload.get("comment")
        return cls(
            name=name,
            action=str(payload.get("action") or ""),
            issue=Issue.from_payload(payload.get("issue")),
            repository=Repository.from_payload(payload.get("repository")),
            comment=Comment.from_payload(comment_payload) if isinstance(comment_payload, Mapping) else None,
        )

    def should_process(self) -> bool:
        allowed = PROCESSED_ACTIONS.get(self.name)
        if allowed is None:
            return False
        if self.name == ISSUE_COMMENT_EVENT and self.comment is None:
            return False
        return not self.action or self.action in allowed


__all__ = [
    "Comment",
    "ISSUES_EVENT",
    "ISSUE_COMMENT_EVENT",
    "Issue",
    "IssueEvent",
    "Repository",
    "User",
    "parse_timestamp",
]

"""Minimal GitHub REST client covering the calls the triage flow makes."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import urllib.parse
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..transport import HTTPTransportError, send_json
from .models import Comment, Issue

LOGGER = logging.getLogger(__name__)

Transport = Callable[[str, str, Optional[Dict[str, Any]]], Tuple[int, str]]

PAGE_SIZE = 100


class GitHubError(RuntimeError):
    """Raised when a GitHub call that must succeed does not."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class GitHubClient:
    """Blocking REST client; ``transport`` can be swapped out in tests.

    Reads that only enrich a brief (file contents, issue search) return
    neutral values on failure. Listing comments on a missing issue returns an
    empty list. Writes raise ``GitHubError``.
    """

    def __init__(
        self,
        *,
        token: str = "",
        api_url: str = "https://api.github.com",
        transport: Optional[Transport] = None,
        timeout: float = 30.0,
    ) -> None:
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport or self._http_transport
        if transport is None and not token:
            raise ValueError("A GitHub token is required when using the default transport.")

    def list_issue_comments(self, owner: str, repo: str, number: int) -> List[Comment]:
        comments: List[Comment] = []
        page = 1
        while True:
            path = f"/repos/{owner}/{repo}/issues/{number}/comments?per_page={PAGE_SIZE}&page={page}"
            status, text = self._request("GET", path)
            if status == 404:
                return comments
            self._raise_for_status(status, text, f"list comments on {owner}/{repo}#{number}")
            batch = self._decode(text)
            if not isinstance(batch, list):
                raise GitHubError(f"Unexpected comments payload for {owner}/{repo}#{number}", status=status)
            comments.extend(Comment.from_payload(item) for item in batch)
            if len(batch) < PAGE_SIZE:
                return comments
            page += 1

    def post_comment(self, owner: str, repo: str, number: int, body: str) -> Comment:
        status, text = self._request("POST", f"/repos/{owner}/{repo}/issues/{number}/comments", {"body": body})
        self._raise_for_status(status, text, f"post comment on {owner}/{repo}#{number}")
        LOGGER.info("Posted comment on %s/%s#%d", owner, repo, number)
        return Comment.from_payload(self._decode(text))

    def add_labels(self, owner: str, repo: str, number: int, labels: List[str]) -> None:
        if not labels:
            return
        status, text = self._request("POST", f"/repos/{owner}/{repo}/issues/{number}/labels", {"labels": labels})
        self._raise_for_status(status, text, f"add labels on {owner}/{repo}#{number}")
        LOGGER.info("Added labels %s on %s/%s#%d", labels, owner, repo, number)

    def add_assignees(self, owner: str, repo: str, number: int, assignees: List[str]) -> None:
        if not assignees:
            return
        status, text = self._request(
            "POST", f"/repos/{owner}/{repo}/issues/{number}/assignees", {"assignees": assignees}
        )
        self._raise_for_status(status, text, f"add assignees on {owner}/{repo}#{number}")
        LOGGER.info("Assigned %s on %s/%s#%d", assignees, owner, repo, number)

    def get_file_content(self, owner: str, repo: str, path: str, ref: str | None = None) -> str:
        """Return the decoded file at ``path``; empty string when unavailable."""
        query = f"?ref={urllib.parse.quote(ref)}" if ref else ""
        try:
            status, text = self._request("GET", f"/repos/{owner}/{repo}/contents/{path}{query}")
        except GitHubError as error:
            LOGGER.warning("Could not fetch %s from %s/%s: %s", path, owner, repo, error)
            return ""
        if status >= 400:
            return ""
        data = self._decode_quietly(text)
        if not isinstance(data, dict):
            return ""
        content = data.get("content")
        if not isinstance(content, str):
            return ""
        try:
            raw = base64.b64decode(content.replace("\n", "").replace("\r", ""))
        except (binascii.Error, ValueError):
            return ""
        return raw.decode("utf-8", errors="replace")

    def search_issues(self, owner: str, repo: str, query: str, max_results: int = 5) -> List[Issue]:
        """Return recent issues in the repository matching ``query``; empty on failure."""
        search = urllib.parse.quote(f"repo:{owner}/{repo} is:issue {query}")
        path = f"/search/issues?q={search}&per_page={max_results}&sort=created&order=desc"
        try:
            status, text = self._request("GET", path)
        except GitHubError as error:
            LOGGER.warning("Issue search failed for %s/%s: %s", owner, repo, error)
            return []
        if status >= 400:
            return []
        data = self._decode_quietly(text)
        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            return []
        return [Issue.from_payload(item) for item in data["items"]]

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> Tuple[int, str]:
        url = f"{self._api_url}{path}"
        try:
            return self._transport(method, url, body)
        except GitHubError:
            raise
        except Exception as error:  # pragma: no cover
            raise GitHubError(f"Transport rejected {method} {path}: {error}") from error

    def _http_transport(self, method: str, url: str, body: Optional[Dict[str, Any]]) -> Tuple[int, str]:
        """Default transport; HTTP errors come back as status codes."""
        headers = {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self._token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        try:
            return send_json(method, url, headers=headers, body=body, timeout=self._timeout)
        except HTTPTransportError as error:
            raise GitHubError(str(error)) from error

    @staticmethod
    def _raise_for_status(status: int, text: str, action: str) -> None:
        if status < 400:
            return
        snippet = text[:200]
        raise GitHubError(f"Failed to {action}: HTTP {status} {snippet}", status=status)

    @staticmethod
    def _decode(text: str) -> Any:
        if not text or not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as error:
            raise GitHubError(f"GitHub returned invalid JSON: {text[:200]}") from error

    @staticmethod
    def _decode_quietly(text: str) -> Any:
        try:
            return json.loads(text)
        except (TypeError, json.JSONDecodeError):
            return None


__all__ = ["GitHubClient", "GitHubError", "Transport"]

from __future__ import annotations

import json
import os
import subprocess
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from concierge.github.client import GitHubClient  # noqa: E402
from concierge.github.models import Comment, Issue, User  # noqa: E402
from concierge.models.llm_client import LLMClient  # noqa: E402
from concierge.orchestrator import Orchestrator  # noqa: E402
from concierge.specpack.schema import SpecPack  # noqa: E402

BOT = "github-actions[bot]"
OWNER = "acme"
REPO = "widgets"

SPEC_PACK_DATA: Dict[str, Any] = {
    "categories": [
        {"name": "bug", "description": "Something is broken", "keywords": ["crash", "error", "bug"]},
        {"name": "build", "description": "Build failures", "keywords": ["build", "compile"]},
        {"name": "off_topic", "description": "Not a problem report", "keywords": ["thanks", "question", "roadmap"]},
    ],
    "checklists": [
        {
            "category": "bug",
            "completeness_threshold": 70,
            "required_fields": [
                {"name": "os", "description": "Operating system", "weight": 10, "aliases": ["operating_system"]},
                {"name": "error_message", "description": "Full error text", "weight": 20, "aliases": ["error"]},
            ],
        },
        {
            "category": "build",
            "completeness_threshold": 70,
            "required_fields": [
                {"name": "build_command", "description": "Failing command", "weight": 20},
                {"name": "build_log", "description": "Build output", "weight": 20},
            ],
        },
    ],
    "validators": {
        "junk_patterns": [r"^(n/?a|none|tbd|unknown|\?+)$"],
        "format_validators": {},
        "secret_patterns": [r"(?:api[_-]?key|password)\s*[:=]\s*\S+", r"ghp_[A-Za-z0-9]{20,}"],
        "contradiction_rules": [],
    },
    "routing": {
        "routes": [{"category": "bug", "labels": ["bug", "triaged"], "assignees": ["alice", "@team"]}],
        "escalation_mentions": ["@maintainers"],
    },
    "playbooks": {"bug": "1. Reproduce on the latest release.\n2. Check the error against known issues."},
}


def build_spec_pack(**overrides: Any) -> SpecPack:
    data = json.loads(json.dumps(SPEC_PACK_DATA))
    data.update(overrides)
    return SpecPack.model_validate(data)


class FakeGitHub(GitHubClient):
    """In-memory issue thread standing in for the REST API."""

    def __init__(self, comments: Optional[List[Comment]] = None) -> None:
        super().__init__(token="test-token", transport=self._offline)
        self.comments: List[Comment] = list(comments or [])
        self.posted: List[Comment] = []
        self.labels: List[str] = []
        self.assignees: List[str] = []
        self.files: Dict[str, str] = {}
        self.search_results: List[Issue] = []
        self.search_queries: List[str] = []
        self.list_calls = 0
        self._next_id = 1000
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    @staticmethod
    def _offline(method: str, url: str, body: Optional[Dict[str, Any]]) -> tuple[int, str]:
        raise AssertionError(f"unexpected HTTP call {method} {url}")

    def tick(self) -> datetime:
        self._clock += timedelta(minutes=1)
        return self._clock

    def add_comment(self, login: str, body: str) -> Comment:
        self._next_id += 1
        comment = Comment(id=self._next_id, body=body, user=User(login=login), created_at=self.tick())
        self.comments.append(comment)
        return comment

    def list_issue_comments(self, owner: str, repo: str, number: int) -> List[Comment]:
        self.list_calls += 1
        return list(self.comments)

    def post_comment(self, owner: str, repo: str, number: int, body: str) -> Comment:
        comment = self.add_comment(BOT, body)
        self.posted.append(comment)
        return comment

    def add_labels(self, owner: str, repo: str, number: int, labels: List[str]) -> None:
        self.labels.extend(labels)

    def add_assignees(self, owner: str, repo: str, number: int, assignees: List[str]) -> None:
        self.assignees.extend(assignees)

    def get_file_content(self, owner: str, repo: str, path: str, ref: str | None = None) -> str:
        return self.files.get(path, "")

    def search_issues(self, owner: str, repo: str, query: str, max_results: int = 5) -> List[Issue]:
        self.search_queries.append(query)
        return list(self.search_results)[:max_results]


class ScriptedLLMClient(LLMClient):
    """Replays canned JSON answers keyed by the requested schema name."""

    def __init__(self, responses: Optional[Dict[str, List[Any]]] = None) -> None:
        super().__init__(model="scripted", max_attempts=1, retry_delay=0.0)
        self.responses: Dict[str, List[Any]] = {key: list(value) for key, value in (responses or {}).items()}
        self.calls: List[Dict[str, Any]] = []

    def script(self, schema_name: str, *answers: Any) -> None:
        self.responses.setdefault(schema_name, []).extend(answers)

    def schemas_called(self) -> List[str]:
        return [call["text"]["format"]["name"] for call in self.calls]

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        self.calls.append(payload)
        name = payload["text"]["format"]["name"]
        queue = self.responses.get(name) or []
        if not queue:
            return "no scripted answer"
        answer = queue.pop(0) if len(queue) > 1 else queue[0]
        return answer if isinstance(answer, str) else json.dumps(answer)


def issue_payload(
    body: str,
    *,
    title: str = "Widget crashes",
    author: str = "reporter",
    action: str = "opened",
    number: int = 7,
) -> Dict[str, Any]:
    return {
        "action": action,
        "issue": {
            "number": number,
            "title": title,
            "body": body,
            "user": {"login": author, "type": "User"},
            "state": "open",
            "labels": [],
        },
        "repository": {"name": REPO, "full_name": f"{OWNER}/{REPO}", "owner": {"login": OWNER}},
    }


def comment_payload(comment: Comment, issue_body: str, *, author: str = "reporter", number: int = 7) -> Dict[str, Any]:
    payload = issue_payload(issue_body, author=author, action="created", number=number)
    payload["comment"] = {
        "id": comment.id,
        "body": comment.body,
        "user": {"login": comment.user.login, "type": "User"},
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
    }
    return payload


@pytest.fixture()
def spec_pack() -> SpecPack:
    return build_spec_pack()


@pytest.fixture()
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture()
def llm() -> ScriptedLLMClient:
    return ScriptedLLMClient()


@pytest.fixture()
def orchestrator(github: FakeGitHub, llm: ScriptedLLMClient, spec_pack: SpecPack) -> Orchestrator:
    return Orchestrator(github=github, client=llm, spec_pack=spec_pack, bot_username=BOT)


def run_cli(*args: str, cwd: Path, env: Optional[Dict[str, str]] = None) -> subprocess.CompletedProcess[str]:
    """Invoke ``python -m concierge.cli`` with the provided arguments."""
    merged = os.environ.copy()
    merged.update(env or {})
    pythonpath = str(SRC)
    if merged.get("PYTHONPATH"):
        pythonpath = os.pathsep.join([pythonpath, merged["PYTHONPATH"]])
    merged["PYTHONPATH"] = pythonpath

    command = [sys.executable, "-m", "concierge.cli", *args]
    return subprocess.run(  # noqa: S603 - command constructed from known values
        command,
        cwd=cwd,
        env=merged,
        capture_output=True,
        text=True,
        check=False,
    )

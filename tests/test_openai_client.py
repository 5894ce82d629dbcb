from __future__ import annotations

import json
from typing import Any, Dict, List

import pytest

from concierge.models.llm_client import LLMRequest, LLMResponseFormatError, LLMTransportError
from concierge.models import openai_responses
from concierge.models.openai_responses import OpenAIResponsesClient, output_text
from concierge.phases.base import Failed, Ok, PartialOk
from concierge.phases.classify import ClassifyRequest, ClassifyResponse, run as run_classify
from concierge.transport import HTTPTransportError


def _responses_payload(content: Dict[str, Any]) -> str:
    return json.dumps(
        {
            "id": "resp_mock",
            "object": "response",
            "status": "completed",
            "output": [{"id": "msg_mock", "type": "message", "role": "assistant", "content": [content]}],
        }
    )


def _client(*answers: str) -> tuple[OpenAIResponsesClient, List[Dict[str, Any]]]:
    seen: List[Dict[str, Any]] = []
    queue = list(answers)

    def transport(payload: Dict[str, Any]) -> str:
        seen.append(payload)
        return queue.pop(0) if len(queue) > 1 else queue[0]

    return OpenAIResponsesClient(model="gpt-test", transport=transport, retry_delay=0.0), seen


def _request() -> LLMRequest[ClassifyResponse]:
    return LLMRequest(
        prompt="Classify this",
        system_prompt="You triage issues.",
        response_model=ClassifyResponse,
        schema_name="category_classification",
        metadata={"issue_number": 12},
    )


def test_extracts_output_text() -> None:
    answer = {"category": "bug", "confidence": 0.8, "reasoning": "crash"}
    client, seen = _client(_responses_payload({"type": "output_text", "text": json.dumps(answer)}))

    data, raw = client.invoke_json(_request())

    assert data == answer
    assert json.loads(raw) == answer
    payload = seen[0]
    assert payload["model"] == "gpt-test"
    assert payload["text"]["format"]["name"] == "category_classification"
    assert payload["text"]["format"]["type"] == "json_schema"
    assert [message["role"] for message in payload["input"]] == ["system", "user"]
    assert payload["metadata"] == {"issue_number": "12"}


def test_extracts_output_json_block() -> None:
    client, _ = _client(_responses_payload({"type": "output_json", "json": {"category": "build"}}))

    data, _ = client.invoke_json(_request())

    assert data == {"category": "build"}


def test_repairs_fenced_json() -> None:
    fenced = "```json\n{\"category\": \"install\", \"confidence\": 0.4,}\n```"
    client, _ = _client(_responses_payload({"type": "output_text", "text": fenced}))

    data, _ = client.invoke_json(_request())

    assert data["category"] == "install"


def test_retries_until_json_is_returned() -> None:
    client, seen = _client(
        _responses_payload({"type": "output_text", "text": "let me think about it"}),
        _responses_payload({"type": "output_text", "text": "{\"category\": \"bug\"}"}),
    )

    data, _ = client.invoke_json(_request())

    assert data == {"category": "bug"}
    assert len(seen) == 2


def test_refusal_is_a_format_error() -> None:
    client, seen = _client(_responses_payload({"type": "refusal", "refusal": "I can't help with that"}))

    with pytest.raises(LLMResponseFormatError):
        client.invoke_json(_request())
    assert len(seen) == 3


def test_transport_failures_propagate() -> None:
    def transport(_: Dict[str, Any]) -> str:
        raise LLMTransportError("HTTP 500: boom")

    client = OpenAIResponsesClient(model="gpt-test", transport=transport, max_attempts=2, retry_delay=0.0)

    with pytest.raises(LLMTransportError, match="after 2 attempt"):
        client.invoke_json(_request())


def test_api_key_required_without_transport(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(ValueError):
        OpenAIResponsesClient(model="gpt-test")


def test_classify_phase_outcomes() -> None:
    request = ClassifyRequest(title="Crash", body="boom", categories=[("bug", "Broken"), ("build", "Builds")])

    ok_client, seen = _client(_responses_payload({"type": "output_text", "text": "{\"category\": \"bug\", \"confidence\": 0.9, \"reasoning\": \"crash\"}"}))
    ok = run_classify(request, client=ok_client)
    assert isinstance(ok, Ok)
    assert ok.value.category == "bug"
    schema = seen[0]["text"]["format"]["schema"]
    assert schema["properties"]["category"]["enum"] == ["bug", "build"]

    partial_client, _ = _client(_responses_payload({"type": "output_text", "text": "{\"category\": \"feature\"}"}))
    partial = run_classify(request, client=partial_client)
    assert isinstance(partial, PartialOk)
    assert partial.value.confidence == 0.5
    assert partial.violations == ["category: 'feature' is not configured"]

    failed_client, _ = _client(_responses_payload({"type": "output_text", "text": "no idea"}))
    failed = run_classify(request, client=failed_client)
    assert isinstance(failed, Failed)
    assert failed.raw == "no idea"


def test_reasoning_items_are_skipped() -> None:
    body = json.dumps(
        {
            "status": "completed",
            "output": [
                {"id": "rs_1", "type": "reasoning", "summary": []},
                {"type": "message", "content": [{"type": "output_text", "text": "{\"category\": \"build\"}"}]},
            ],
        }
    )

    assert output_text(body) == "{\"category\": \"build\"}"


@pytest.mark.parametrize(
    ("body", "message"),
    [
        ("<html>Bad gateway</html>", "non-JSON body"),
        ("[1, 2]", "unexpected body"),
        (json.dumps({"status": "incomplete", "output": []}), "status incomplete"),
    ],
)
def test_bodies_without_an_answer_are_format_errors(body: str, message: str) -> None:
    with pytest.raises(LLMResponseFormatError, match=message):
        output_text(body)


def test_http_transport_posts_with_bearer_token(monkeypatch: pytest.MonkeyPatch) -> None:
    sent: List[Dict[str, Any]] = []

    def fake_send(method: str, url: str, *, headers: Dict[str, str], body: Dict[str, Any], timeout: float):
        sent.append({"method": method, "url": url, "headers": headers, "body": body, "timeout": timeout})
        return 200, _responses_payload({"type": "output_text", "text": "{\"category\": \"bug\"}"})

    monkeypatch.setattr(openai_responses, "send_json", fake_send)
    client = OpenAIResponsesClient(api_key="sk-test", model="gpt-test", timeout=12.0, retry_delay=0.0)

    data, _ = client.invoke_json(_request())

    assert data == {"category": "bug"}
    assert sent[0]["method"] == "POST"
    assert sent[0]["url"] == "https://api.openai.com/v1/responses"
    assert sent[0]["headers"] == {"Authorization": "Bearer sk-test"}
    assert sent[0]["body"]["model"] == "gpt-test"
    assert sent[0]["timeout"] == 12.0


def test_http_error_status_is_a_transport_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(openai_responses, "send_json", lambda *args, **kwargs: (429, "{\"error\": \"slow down\"}"))
    client = OpenAIResponsesClient(api_key="sk-test", model="gpt-test", max_attempts=1, retry_delay=0.0)

    with pytest.raises(LLMTransportError, match="HTTP 429"):
        client.invoke_json(_request())


def test_unreachable_endpoint_is_a_transport_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def refuse(*args: Any, **kwargs: Any):
        raise HTTPTransportError("Failed to reach https://api.openai.com/v1/responses: refused")

    monkeypatch.setattr(openai_responses, "send_json", refuse)
    client = OpenAIResponsesClient(api_key="sk-test", model="gpt-test", max_attempts=1, retry_delay=0.0)

    with pytest.raises(LLMTransportError, match="refused"):
        client.invoke_json(_request())

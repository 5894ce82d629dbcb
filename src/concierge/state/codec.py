"""Embed conversation state in comment bodies as a hidden HTML marker."""

from __future__ import annotations

import base64
import binascii
import gzip
import json
import re
from typing import Optional

from pydantic import ValidationError

from ..telemetry import STATE_DECODE_FAILED, STATE_PAYLOAD_OVERSIZED, emit_event
from .models import ConversationState


MARKER_PREFIX = "<!-- supportbot_state:"
MARKER_SUFFIX = " -->"
COMPRESSED_TAG = "compressed:"
COMPRESSION_THRESHOLD_BYTES = 5_000
SIZE_WARNING_BYTES = 50_000

_MARKER_PATTERN = re.compile(re.escape(MARKER_PREFIX) + r"(.+?)" + re.escape(MARKER_SUFFIX), re.DOTALL)

# JSON escapes for characters that could close the HTML comment early.
_HTML_SAFE = str.maketrans({"<": "\\u003c", ">": "\\u003e", "&": "\\u0026"})


class StateCodec:
    """Serialize ``ConversationState`` into comment text and back.

    Payloads above 5,000 UTF-8 bytes are gzip-compressed and base64-encoded.
    Comment bodies are capped near 65 KB, so anything above 50,000 bytes logs
    a warning but is still written.
    """

    def encode(self, body: str, state: ConversationState) -> str:
        payload = state.model_dump_json(by_alias=True).translate(_HTML_SAFE)
        size = len(payload.encode("utf-8"))
        if size > SIZE_WARNING_BYTES:
            emit_event(STATE_PAYLOAD_OVERSIZED, size=size, limit=SIZE_WARNING_BYTES)
        if size > COMPRESSION_THRESHOLD_BYTES:
            compressed = base64.b64encode(gzip.compress(payload.encode("utf-8"))).decode("ascii")
            marker = f"{MARKER_PREFIX}{COMPRESSED_TAG}{compressed}{MARKER_SUFFIX}"
        else:
            marker = f"{MARKER_PREFIX}{payload}{MARKER_SUFFIX}"
        return f"{self.strip(body)}\n\n{marker}"

    def decode(self, body: str | None) -> Optional[ConversationState]:
        """Return the state in the last marker of ``body``; ``None`` when absent or unreadable."""
        if not body or not body.strip():
            return None
        matches = _MARKER_PATTERN.findall(body)
        if not matches:
            return None
        data = matches[-1]
        try:
            if data.startswith(COMPRESSED_TAG):
                raw = base64.b64decode(data[len(COMPRESSED_TAG) :], validate=True)
                data = gzip.decompress(raw).decode("utf-8")
            payload = json.loads(data)
            if not isinstance(payload, dict):
                raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
            return ConversationState.model_validate(payload)
        except (binascii.Error, OSError, EOFError, UnicodeDecodeError, ValueError, ValidationError) as error:
            emit_event(STATE_DECODE_FAILED, error=str(error)[:200])
            return None

    @staticmethod
    def strip(body: str | None) -> str:
        """Remove every state marker and surrounding whitespace."""
        if not body:
            return ""
        return _MARKER_PATTERN.sub("", body).strip()

    @staticmethod
    def contains_marker(body: str | None) -> bool:
        return bool(body) and _MARKER_PATTERN.search(body) is not None


__all__ = [
    "COMPRESSED_TAG",
    "COMPRESSION_THRESHOLD_BYTES",
    "MARKER_PREFIX",
    "MARKER_SUFFIX",
    "SIZE_WARNING_BYTES",
    "StateCodec",
]

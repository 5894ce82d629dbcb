"""Blocking JSON-over-HTTP calls shared by the GitHub and model clients."""

from __future__ import annotations

import json
import urllib.error
import urllib.request
from typing import Any, Dict, Mapping, Optional, Tuple

USER_AGENT = "support-concierge/0.1"


class HTTPTransportError(RuntimeError):
    """The server could not be reached or did not answer in time."""


def send_json(
    method: str,
    url: str,
    *,
    headers: Mapping[str, str],
    body: Optional[Dict[str, Any]] = None,
    timeout: float,
) -> Tuple[int, str]:
    """Send ``body`` as JSON and return ``(status, text)``.

    HTTP error statuses are returned rather than raised so each client can
    decide which ones matter. Only connection failures and timeouts raise.
    """
    data = json.dumps(body).encode("utf-8") if body is not None else None
    request = urllib.request.Request(url, data=data, method=method)
    request.add_header("User-Agent", USER_AGENT)
    for name, value in headers.items():
        request.add_header(name, value)
    if data is not None:
        request.add_header("Content-Type", "application/json")

    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            return getattr(response, "status", 200), response.read().decode("utf-8")
    except urllib.error.HTTPError as error:
        return error.code, error.read().decode("utf-8", errors="ignore")
    except urllib.error.URLError as error:
        raise HTTPTransportError(f"Failed to reach {url}: {error.reason}") from error
    except TimeoutError as error:
        raise HTTPTransportError(f"Timed out after {timeout}s: {method} {url}") from error


__all__ = ["HTTPTransportError", "USER_AGENT", "send_json"]

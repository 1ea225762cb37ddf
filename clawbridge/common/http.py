"""Lightweight JSON-over-HTTP helpers (stdlib only).

Every call is time-bounded and raises on failure; callers decide whether a
failure is worth more than a log line. Nothing here retries.
"""

from __future__ import annotations

import json
from urllib.request import Request, urlopen

from clawbridge.common.constants import DEFAULT_HTTP_TIMEOUT_SECS, USER_AGENT


def _request(
    url: str,
    *,
    method: str = "GET",
    payload: object | None = None,
    headers: dict | None = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT_SECS,
    expect_json: bool = True,
) -> dict:
    """Core request with User-Agent and JSON encoding of *payload*.

    Non-2xx responses surface as ``urllib.error.HTTPError``. With
    *expect_json* off the response body is discarded, so any 2xx counts.
    """
    hdr = {"Accept": "application/json", "User-Agent": USER_AGENT, **(headers or {})}
    data = None
    if payload is not None:
        data = json.dumps(payload).encode()
        hdr.setdefault("Content-Type", "application/json")
    req = Request(url, method=method, data=data, headers=hdr)
    with urlopen(req, timeout=timeout) as resp:
        raw = resp.read()
        if not expect_json:
            return {}
        body = raw.decode()
        return json.loads(body) if body else {}


def bearer(token: str | None) -> dict[str, str]:
    """Authorization header for *token*, or nothing when it is unset."""
    return {"Authorization": f"Bearer {token}"} if token else {}


def http_get(url: str, headers: dict | None = None, timeout: float = DEFAULT_HTTP_TIMEOUT_SECS) -> dict:
    """Perform a GET request and return the parsed JSON body."""
    return _request(url, method="GET", headers=headers, timeout=timeout)


def http_post(
    url: str,
    payload: object | None = None,
    headers: dict | None = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT_SECS,
    expect_json: bool = True,
) -> dict:
    """Perform a POST request with a JSON body and return the parsed JSON body."""
    return _request(
        url, method="POST", payload=payload, headers=headers,
        timeout=timeout, expect_json=expect_json,
    )


def http_put(
    url: str,
    payload: object | None = None,
    headers: dict | None = None,
    timeout: float = DEFAULT_HTTP_TIMEOUT_SECS,
    expect_json: bool = False,
) -> dict:
    """Perform a PUT request with a JSON body.

    The body of a 2xx answer is only parsed when *expect_json* is set.
    """
    return _request(
        url, method="PUT", payload=payload, headers=headers,
        timeout=timeout, expect_json=expect_json,
    )

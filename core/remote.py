"""
Shared HTTP plumbing for the remote transcription and classification services.
"""
from __future__ import annotations

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from core.config import Settings


def create_session(settings: Settings) -> requests.Session:
    """
    Create a requests session. Retries stay off unless HTTP_RETRIES is set,
    and then only for idempotent requests on transient status codes.
    """
    session = requests.Session()

    retry_strategy = Retry(
        total=settings.HTTP_RETRIES,
        backoff_factor=1,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )

    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"Accept": "application/json"})
    return session


def is_success(response) -> bool:
    return 200 <= int(response.status_code) < 300


def error_detail(response) -> str:
    """Best-effort error text from a failed response."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict):
            err = err.get("message")
        if err:
            return f"HTTP {response.status_code}: {err}"
    text = (getattr(response, "text", "") or "").strip()
    return f"HTTP {response.status_code}: {text[:200]}" if text else f"HTTP {response.status_code}"


def json_body(response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}

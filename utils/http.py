"""HTTP utilities for configuring reusable sessions."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util import Retry

DEFAULT_STATUS_FORCELIST = (429, 500, 502, 503, 504)

_LOGGER = logging.getLogger(__name__)
_API_PREFIX = "api"


def build_api_headers(
    *, token: Optional[str] = None, session: Optional[requests.Session] = None
) -> dict[str, str]:
    """Return default inventory API headers with optional bearer token."""

    headers: dict[str, str] = {
        "Accept": "application/json",
        "Content-Type": "application/json",
    }
    auth_value: Optional[str] = None
    if token:
        auth_value = f"Bearer {token}"
    elif session is not None:
        auth_value = session.headers.get("Authorization")
    if auth_value:
        headers["Authorization"] = auth_value
    return headers


def get_session(auth_token: Optional[str] = None) -> requests.Session:
    """Return a configured :class:`requests.Session` with retries.

    Parameters
    ----------
    auth_token:
        API bearer token. When provided, the ``Authorization`` header
        will be configured automatically.
    """

    session = requests.Session()
    session.headers.update(build_api_headers(token=auth_token))

    retry = Retry(
        total=3,
        status_forcelist=DEFAULT_STATUS_FORCELIST,
        backoff_factor=0.4,
        allowed_methods=("GET", "PUT", "DELETE", "OPTIONS", "HEAD"),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(pool_connections=10, pool_maxsize=10, max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def build_api_url(base_url: str, path: str) -> str:
    """Join ``base_url``, the ``/api`` prefix and a resource ``path``."""

    resource = str(path or "").lstrip("/")
    return "/".join(part for part in (base_url.rstrip("/"), _API_PREFIX, resource) if part)


def _auth_headers(
    session: requests.Session,
    token: Optional[str],
    headers: Optional[Dict[str, str]],
) -> Dict[str, str]:
    auth_headers: Dict[str, str] = build_api_headers(
        token=(token.strip() if isinstance(token, str) else None), session=session
    )
    if headers:
        auth_headers.update(headers)
    return auth_headers


def api_get(
    session: requests.Session,
    base_url: str,
    path: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout: int = 30,
    token: Optional[str] = None,
) -> dict | list:
    """Perform an authenticated GET request to the inventory REST API."""

    final_url = build_api_url(base_url, path)
    _LOGGER.debug("api_get URL=%s", final_url)

    response = session.get(
        final_url, headers=_auth_headers(session, token, headers), timeout=timeout
    )
    response.raise_for_status()

    content_type = response.headers.get("Content-Type", "")
    if "application/json" not in content_type:
        snippet = response.text[:200]
        raise RuntimeError(f"Non-JSON from inventory API for {final_url}: {snippet}")

    return response.json()


def api_send_logged(
    session: requests.Session,
    base_url: str,
    method: str,
    path: str,
    *,
    json_body: Any = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: int = 30,
    token: Optional[str] = None,
) -> Tuple[int, Optional[str], str, requests.Response]:
    """Send a write request capturing response metadata without raising."""

    final_url = build_api_url(base_url, path)
    _LOGGER.debug("api_send_logged %s URL=%s", method.upper(), final_url)

    response = session.request(
        method.upper(),
        final_url,
        json=json_body,
        headers=_auth_headers(session, token, headers),
        timeout=timeout,
    )
    status = response.status_code
    content_type = response.headers.get("Content-Type")
    body_snippet = response.text

    return status, content_type, body_snippet, response

"""Product detail source and submission sink."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import requests

from connectors.inventory.attributes import ensure_attribute_values
from connectors.inventory.client import api_get, api_send_logged
from services.wizard import SubmissionResult, WizardController, WizardStep


_LOGGER = logging.getLogger(__name__)


def get_product(session: requests.Session, base_url: str, product_id: int) -> Dict[str, Any]:
    data = api_get(session, base_url, f"/products/{quote(str(product_id), safe='')}")
    if isinstance(data, dict) and isinstance(data.get("data"), dict):
        return data["data"]
    return data if isinstance(data, dict) else {}


def _field_errors(raw: Any) -> Dict[str, List[str]]:
    if not isinstance(raw, dict):
        return {}
    errors: Dict[str, List[str]] = {}
    for key, messages in raw.items():
        if isinstance(messages, (list, tuple)):
            cleaned = [str(m) for m in messages if m not in (None, "")]
        elif messages in (None, ""):
            cleaned = []
        else:
            cleaned = [str(messages)]
        if cleaned:
            errors[str(key)] = cleaned
    return errors


def parse_submission_response(
    status: int, content_type: Optional[str], body: str, resp: requests.Response
) -> SubmissionResult:
    """Map an HTTP response from the product endpoint to a result."""

    data: Any = None
    if "application/json" in (content_type or ""):
        try:
            data = resp.json()
        except ValueError:
            data = None

    if 200 <= status < 300:
        product = data.get("data") if isinstance(data, dict) and "data" in data else data
        return SubmissionResult.success(product if isinstance(product, dict) else None)

    message = ""
    field_errors: Dict[str, List[str]] = {}
    if isinstance(data, dict):
        message = str(data.get("message") or "")
        field_errors = _field_errors(data.get("errors"))
    if not message:
        snippet = (body or "").strip()[:200]
        message = f"HTTP {status}: {snippet}" if snippet else f"HTTP {status}"
    _LOGGER.warning("Product submission rejected: %s", message)
    return SubmissionResult.failure(message, field_errors)


class ProductSubmissionSink:
    """Create (``POST``) or update (``PUT``) a product from a wizard payload."""

    def __init__(
        self,
        session: requests.Session,
        base_url: str,
        product_id: Optional[int] = None,
        timeout: int = 60,
    ):
        self._session = session
        self._base_url = base_url
        self._product_id = product_id
        self._timeout = timeout

    def __call__(self, payload: Dict[str, Any]) -> SubmissionResult:
        if self._product_id is None:
            method, path = "POST", "/products"
        else:
            method, path = "PUT", f"/products/{quote(str(self._product_id), safe='')}"
        try:
            status, ctype, body, resp = api_send_logged(
                self._session,
                self._base_url,
                method,
                path,
                json_body=payload,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            _LOGGER.warning("Product submission transport error: %s", exc)
            return SubmissionResult.failure(f"Could not reach the server: {exc}")
        return parse_submission_response(status, ctype, body, resp)


def submit_product(
    session: requests.Session,
    base_url: str,
    controller: WizardController,
) -> Tuple[Optional[SubmissionResult], List[Tuple[int, str]]]:
    """Submit the wizard draft, creating unknown attribute values first.

    Values are only created once the draft passes preview validation, so a
    rejected click leaves the server untouched. Returns the submit result and
    the values that could not be created.
    """

    failed: List[Tuple[int, str]] = []
    if controller.step == WizardStep.PREVIEW and controller.is_step_valid(WizardStep.PREVIEW):
        failed = ensure_attribute_values(
            session, base_url, controller.catalog, controller.selection
        )
    sink = ProductSubmissionSink(session, base_url, product_id=controller.product_id)
    return controller.submit(sink), failed

"""HTTP helpers shared by the store clients."""

import logging
from typing import Any, Dict

import requests

from pdf_relay.core.exceptions import UpstreamError
from pdf_relay.core.utils import redact_url_for_log

logger = logging.getLogger(__name__)

TOKEN_TIMEOUT_SECONDS = 30
USER_AGENT = "PDF-Relay/1.0"


def _body_excerpt(response: requests.Response) -> str:
    try:
        return (response.text or "").strip()[:300]
    except Exception:
        return ""


def call(store: str, action: str, method: str, url: str, **kwargs: Any) -> requests.Response:
    """Perform one HTTP call, converting every failure into ``UpstreamError``."""
    headers = dict(kwargs.pop("headers", None) or {})
    headers.setdefault("User-Agent", USER_AGENT)
    timeout = kwargs.get("timeout")

    logger.debug(f"[{store}] {action}: {method} {redact_url_for_log(url)}")
    try:
        response = requests.request(method, url, headers=headers, **kwargs)
    except requests.exceptions.Timeout as e:
        raise UpstreamError.timeout(store, action, float(timeout or 0)) from e
    except requests.exceptions.RequestException as e:
        raise UpstreamError(f"{store} {action} failed: {e}", original_error=e) from e

    if response.status_code >= 400:
        body = _body_excerpt(response)
        response.close()
        logger.warning(f"[{store}] {action} returned HTTP {response.status_code}")
        raise UpstreamError.http_failure(store, action, response.status_code, body)
    return response


def json_body(store: str, action: str, response: requests.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError as e:
        raise UpstreamError(f"{store} {action} returned invalid JSON", original_error=e) from e
    if not isinstance(data, dict):
        raise UpstreamError(f"{store} {action} returned an unexpected response")
    return data


def fetch_access_token(store: str, token_url: str, form: Dict[str, str]) -> str:
    """Exchange client credentials or a refresh token for a bearer token."""
    missing = [key for key, value in form.items() if not value]
    if missing:
        raise UpstreamError.not_configured(store, ", ".join(missing))

    response = call(store, "token request", "POST", token_url, data=form, timeout=TOKEN_TIMEOUT_SECONDS)
    token = json_body(store, "token request", response).get("access_token")
    if not token:
        raise UpstreamError(f"{store} token response did not include an access token")
    logger.info(f"[{store}] Access token received")
    return token

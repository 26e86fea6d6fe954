"""HTTP view functions and error handling for the relay API."""

import logging
import sys
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, Optional

from flask import current_app, jsonify, request, url_for
from werkzeug.exceptions import HTTPException, NotFound, RequestEntityTooLarge

from pdf_relay.config import RuntimeConfig
from pdf_relay.core.exceptions import JobNotFoundError, RelayError, ValidationError
from pdf_relay.core.models import DestinationHints, ExecutionMode, Fidelity, TransformRequest
from pdf_relay.core.utils import BYTES_PER_MB

# Config
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

EXTENSION_KEY = "pdf_relay"
_TRUE_STRINGS = {"1", "true", "yes", "y", "on"}
_FALSE_STRINGS = {"0", "false", "no", "n", "off", ""}


def get_runtime():
    """Return the RelayRuntime attached to the current app."""
    return current_app.extensions[EXTENSION_KEY]


def require_auth(f):
    """Decorator to require Bearer token authentication when API_TOKEN is set."""
    @wraps(f)
    def decorated(*args, **kwargs):
        api_token = get_runtime().config.api_token
        if not api_token:
            return f(*args, **kwargs)

        auth_header = request.headers.get('Authorization')
        if not auth_header:
            logger.warning(f"Missing Authorization header on {request.path}")
            return jsonify({"success": False, "error": "Missing Authorization header"}), 401

        if not auth_header.startswith('Bearer '):
            logger.warning(f"Invalid Authorization format on {request.path}")
            return jsonify({"success": False, "error": "Authorization must use Bearer token format"}), 401

        if auth_header[7:] != api_token:
            logger.warning(f"Invalid token on {request.path}")
            return jsonify({"success": False, "error": "Invalid token"}), 403

        return f(*args, **kwargs)
    return decorated


def create_error_response(error: Exception, status_code: int = 500):
    """Create the standard error body: 'error' plus 'error_type'/'error_message'."""
    if isinstance(error, RelayError):
        error_type, message = error.error_type, error.message
    elif isinstance(error, HTTPException):
        error_type, message = error.name.replace(" ", ""), error.description or str(error)
    else:
        error_type, message = "UnknownError", str(error)

    return jsonify({
        "success": False,
        "error": message,
        "error_type": error_type,
        "error_message": message,
    }), status_code


def get_error_status_code(error: Exception) -> int:
    """Map exception type to appropriate HTTP status code."""
    if isinstance(error, RelayError):
        return error.status_code
    if isinstance(error, HTTPException):
        return error.code or 400
    if isinstance(error, ValueError):
        return 400
    return 500


def handle_relay_error(e: RelayError):
    status_code = get_error_status_code(e)
    if status_code >= 500:
        logger.error(f"{e.error_type} on {request.method} {request.path}: {e.message}")
    else:
        logger.warning(f"{e.error_type} on {request.method} {request.path}: {e.message}")
    return create_error_response(e, status_code)


def handle_large_body(e):
    max_mb = get_runtime().config.max_content_length / BYTES_PER_MB
    message = f"Request body too large (max {max_mb:g}MB)"
    return jsonify({
        "success": False,
        "error": message,
        "error_type": "RequestTooLarge",
        "error_message": message,
    }), 413


def handle_http_exception(e):
    if isinstance(e, NotFound):
        logger.info("404 %s %s", request.method, request.path)
    else:
        logger.warning("HTTP %s on %s %s: %s", e.code, request.method, request.path, e.description)
    return create_error_response(e, e.code or 400)


def handle_error(e):
    logger.exception("Unhandled error")
    return create_error_response(e, get_error_status_code(e))


def register_error_handlers(app) -> None:
    """Register relay, HTTP and framework error handlers."""
    app.register_error_handler(RelayError, handle_relay_error)
    app.register_error_handler(RequestEntityTooLarge, handle_large_body)
    app.register_error_handler(HTTPException, handle_http_exception)
    app.register_error_handler(Exception, handle_error)


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValidationError.invalid_field(name, "must be a boolean")


def _parse_percent(data: Dict[str, Any], name: str, default: float) -> float:
    value = data.get(name)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValidationError.invalid_field(name, "must be a number between 1 and 100")
    try:
        number = float(value)
    except ValueError:
        raise ValidationError.invalid_field(name, "must be a number between 1 and 100") from None
    if not 1 <= number <= 100:
        raise ValidationError.invalid_field(name, f"{value} is outside 1-100")
    return number


def _optional_str(data: Dict[str, Any], name: str) -> Optional[str]:
    value = data.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError.invalid_field(name, "must be a string")
    return value.strip() or None


def parse_transform_request(data: Any, config: RuntimeConfig) -> TransformRequest:
    """Validate a submit body and build the immutable TransformRequest.

    Raises:
        ValidationError: Body is not an object or a field is missing/malformed.
    """
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")

    source_ref = data.get("sourceRef")
    if source_ref is None or (isinstance(source_ref, str) and not source_ref.strip()):
        raise ValidationError.missing_field("sourceRef")
    if not isinstance(source_ref, str):
        raise ValidationError.invalid_field("sourceRef", "must be a string")

    raw_hints = data.get("destinationHints") or {}
    if not isinstance(raw_hints, dict):
        raise ValidationError.invalid_field("destinationHints", "must be an object")
    hints = DestinationHints(
        parent_id=_optional_str(raw_hints, "parentId"),
        owner_id=_optional_str(raw_hints, "ownerId"),
    )

    fidelity = Fidelity.from_percent(
        _parse_percent(data, "quality", config.default_quality),
        _parse_percent(data, "scaleFactor", config.default_scale),
    )
    force_async = _parse_bool(data["async"], "async") if "async" in data else False

    return TransformRequest(
        source_ref=source_ref.strip(),
        fidelity=fidelity,
        hints=hints,
        force_async=force_async,
    )


# Routes
@require_auth
def submit():
    """
    Relay a source document through the transform engine to the destination store.

    Small documents run inline and return the result (200). Large or unknown-size
    documents are queued and return a job ID for polling (202).
    """
    runtime = get_runtime()
    data = request.get_json(silent=True)
    transform_request = parse_transform_request(data, runtime.config)

    outcome = runtime.dispatcher.submit(transform_request)
    if outcome.mode is ExecutionMode.SYNC:
        return jsonify({"success": True, "async": False, **outcome.result.to_dict()})

    return jsonify({
        "success": True,
        "async": True,
        "jobId": outcome.job_id,
        "statusUrl": url_for("api.get_status", job_id=outcome.job_id),
        "pollIntervalSeconds": runtime.config.poll_interval_seconds,
    }), 202


@require_auth
def get_status(job_id: str):
    """
    Get the status of a relay job.

    Args:
        job_id: The job identifier from the /relay response.
    """
    job = get_runtime().registry.get(job_id)
    if job is None:
        raise JobNotFoundError.for_job(job_id)

    response = {"success": job.error is None}
    response.update(job.to_dict())
    return jsonify(response)


def build_health_snapshot() -> Dict[str, Any]:
    """Build a lightweight snapshot for the health endpoint."""
    runtime = get_runtime()
    config = runtime.config
    engine_available = runtime.engine.is_available()
    return {
        "status": "healthy" if engine_available else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "engine": {"name": runtime.engine.name, "available": engine_available},
        "stores": {"source": runtime.source.name, "destination": runtime.destination.name},
        "queue": runtime.job_queue.get_stats(),
        "jobs": runtime.registry.stats(),
        "scheduler": {"pending": runtime.scheduler.pending()},
        "limits": {
            "async_threshold_mb": config.async_threshold_mb,
            "max_sync_bytes": runtime.policy.max_sync_bytes,
            "request_budget_seconds": config.request_budget_seconds,
            "source_max_mb": config.source_max_mb,
        },
    }


def health():
    """Health check endpoint."""
    return jsonify(build_health_snapshot())


def wakeup():
    """Plain-text liveness probe for hosts that sleep when idle."""
    return "awake", 200, {"Content-Type": "text/plain; charset=utf-8"}

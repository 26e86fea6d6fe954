"""Application configuration loading."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from pdf_relay.core.utils import (
    BYTES_PER_MB,
    env_bool,
    env_choice,
    env_float,
    env_int,
    env_str,
)
from pdf_relay.engine import ENGINE_NAMES

logger = logging.getLogger(__name__)

SOURCE_STORES = ("salesforce",)
DESTINATION_STORES = ("salesforce", "google_drive", "sharepoint")
_SECRET_FIELDS = {"api_token", "salesforce_client_secret", "google_client_secret",
                  "google_refresh_token", "sharepoint_client_secret"}


@dataclass(frozen=True)
class RuntimeConfig:
    """Runtime configuration values consumed by the app and the relay pipeline."""

    # Dispatch
    async_threshold_mb: float = 20.0
    seconds_per_mb: float = 1.0
    request_budget_seconds: float = 25.0
    # Job lifecycle
    completed_job_ttl_seconds: float = 3600.0
    failed_job_ttl_seconds: float = 600.0
    sweep_interval_seconds: float = 5.0
    async_workers: int = 2
    poll_interval_seconds: int = 5
    # Transform
    transform_engine: str = "ghostscript"
    gs_base_dpi: int = 150
    gs_min_timeout_seconds: int = 120
    raster_base_dpi: int = 72
    work_dir: Optional[Path] = None
    output_title_suffix: str = "_compressed"
    keep_original_if_larger: bool = True
    default_quality: float = 50.0
    default_scale: float = 100.0
    # Stores
    source_store: str = "salesforce"
    destination_store: str = "salesforce"
    source_max_mb: float = 50.0
    source_timeout_seconds: float = 25.0
    upload_timeout_seconds: float = 600.0
    salesforce_instance_url: str = ""
    salesforce_client_id: str = ""
    salesforce_client_secret: str = ""
    salesforce_api_version: str = "v58.0"
    google_client_id: str = ""
    google_client_secret: str = ""
    google_refresh_token: str = ""
    sharepoint_tenant_id: str = ""
    sharepoint_client_id: str = ""
    sharepoint_client_secret: str = ""
    sharepoint_drive_id: str = ""
    # HTTP
    max_content_length: int = 1 * BYTES_PER_MB
    api_token: str = ""

    @property
    def async_threshold_bytes(self) -> int:
        return int(self.async_threshold_mb * BYTES_PER_MB)

    @property
    def source_max_bytes(self) -> int:
        return int(self.source_max_mb * BYTES_PER_MB)


def _positive(value: float, default: float, name: str) -> float:
    if value <= 0:
        logger.warning("[settings] Non-positive %s=%s; using %s", name, value, default)
        return default
    return value


def _percent(value: float, default: float, name: str) -> float:
    if not 0 < value <= 100:
        logger.warning("[settings] %s=%s outside 1-100; using %s", name, value, default)
        return default
    return value


def load_runtime_config() -> RuntimeConfig:
    """Load runtime configuration from the environment."""
    d = RuntimeConfig()
    work_dir = env_str("WORK_DIR")
    return RuntimeConfig(
        async_threshold_mb=_positive(env_float("ASYNC_THRESHOLD_MB", d.async_threshold_mb), d.async_threshold_mb, "ASYNC_THRESHOLD_MB"),
        seconds_per_mb=max(0.0, env_float("SECONDS_PER_MB", d.seconds_per_mb)),
        request_budget_seconds=_positive(env_float("REQUEST_BUDGET_SECONDS", d.request_budget_seconds), d.request_budget_seconds, "REQUEST_BUDGET_SECONDS"),
        completed_job_ttl_seconds=max(0.0, env_float("COMPLETED_JOB_TTL_SECONDS", d.completed_job_ttl_seconds)),
        failed_job_ttl_seconds=max(0.0, env_float("FAILED_JOB_TTL_SECONDS", d.failed_job_ttl_seconds)),
        sweep_interval_seconds=_positive(env_float("SWEEP_INTERVAL_SECONDS", d.sweep_interval_seconds), d.sweep_interval_seconds, "SWEEP_INTERVAL_SECONDS"),
        async_workers=max(1, env_int("ASYNC_WORKERS", d.async_workers)),
        poll_interval_seconds=max(1, env_int("POLL_INTERVAL_SECONDS", d.poll_interval_seconds)),
        transform_engine=env_choice("TRANSFORM_ENGINE", d.transform_engine, ENGINE_NAMES),
        gs_base_dpi=max(1, env_int("GS_BASE_DPI", d.gs_base_dpi)),
        gs_min_timeout_seconds=max(1, env_int("GS_MIN_TIMEOUT_SECONDS", d.gs_min_timeout_seconds)),
        raster_base_dpi=max(1, env_int("RASTER_BASE_DPI", d.raster_base_dpi)),
        work_dir=Path(work_dir) if work_dir else None,
        output_title_suffix=os.environ.get("OUTPUT_TITLE_SUFFIX", d.output_title_suffix),
        keep_original_if_larger=env_bool("KEEP_ORIGINAL_IF_LARGER", d.keep_original_if_larger),
        default_quality=_percent(env_float("DEFAULT_QUALITY", d.default_quality), d.default_quality, "DEFAULT_QUALITY"),
        default_scale=_percent(env_float("DEFAULT_SCALE", d.default_scale), d.default_scale, "DEFAULT_SCALE"),
        source_store=env_choice("SOURCE_STORE", d.source_store, SOURCE_STORES),
        destination_store=env_choice("DESTINATION_STORE", d.destination_store, DESTINATION_STORES),
        source_max_mb=_positive(env_float("SOURCE_MAX_MB", d.source_max_mb), d.source_max_mb, "SOURCE_MAX_MB"),
        source_timeout_seconds=_positive(env_float("SOURCE_TIMEOUT_SECONDS", d.source_timeout_seconds), d.source_timeout_seconds, "SOURCE_TIMEOUT_SECONDS"),
        upload_timeout_seconds=_positive(env_float("UPLOAD_TIMEOUT_SECONDS", d.upload_timeout_seconds), d.upload_timeout_seconds, "UPLOAD_TIMEOUT_SECONDS"),
        salesforce_instance_url=env_str("SALESFORCE_INSTANCE_URL"),
        salesforce_client_id=env_str("SALESFORCE_CLIENT_ID"),
        salesforce_client_secret=env_str("SALESFORCE_CLIENT_SECRET"),
        salesforce_api_version=env_str("SALESFORCE_API_VERSION", d.salesforce_api_version),
        google_client_id=env_str("GOOGLE_CLIENT_ID"),
        google_client_secret=env_str("GOOGLE_CLIENT_SECRET"),
        google_refresh_token=env_str("GOOGLE_REFRESH_TOKEN"),
        sharepoint_tenant_id=env_str("SHAREPOINT_TENANT_ID"),
        sharepoint_client_id=env_str("SHAREPOINT_CLIENT_ID"),
        sharepoint_client_secret=env_str("SHAREPOINT_CLIENT_SECRET"),
        sharepoint_drive_id=env_str("SHAREPOINT_DRIVE_ID"),
        max_content_length=int(_positive(env_float("MAX_CONTENT_LENGTH_MB", 1.0), 1.0, "MAX_CONTENT_LENGTH_MB") * BYTES_PER_MB),
        api_token=env_str("API_TOKEN"),
    )


def log_effective_config(config: RuntimeConfig) -> None:
    """Print the effective settings once at startup, secrets masked."""
    rows = []
    for f in fields(config):
        value = getattr(config, f.name)
        if f.name in _SECRET_FIELDS or (f.name.endswith("_client_id") and value):
            value = "set" if value else "unset"
        rows.append((f.name, str(value)))

    width = max(len(name) for name, _ in rows)
    lines = ["[ effective settings ]"]
    lines.extend(f"  {name.ljust(width)} : {value}" for name, value in rows)
    logger.info("\n".join(lines))

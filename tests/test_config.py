from pathlib import Path

from pdf_relay.config import RuntimeConfig, load_runtime_config, log_effective_config
from pdf_relay.core.utils import reduction_percent, redact_url_for_log
from pdf_relay.stores import build_destination_store, build_source_store
from pdf_relay.stores.google_drive import GoogleDriveDestination
from pdf_relay.stores.salesforce import SalesforceSource

MB = 1024 * 1024


def test_defaults_without_environment(monkeypatch):
    for name in ("ASYNC_THRESHOLD_MB", "TRANSFORM_ENGINE", "DESTINATION_STORE", "WORK_DIR", "API_TOKEN"):
        monkeypatch.delenv(name, raising=False)

    config = load_runtime_config()

    assert config.async_threshold_bytes == 20 * MB
    assert config.transform_engine == "ghostscript"
    assert config.destination_store == "salesforce"
    assert config.work_dir is None
    assert config.api_token == ""


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ASYNC_THRESHOLD_MB", "10")
    monkeypatch.setenv("TRANSFORM_ENGINE", "raster")
    monkeypatch.setenv("DESTINATION_STORE", "google_drive")
    monkeypatch.setenv("KEEP_ORIGINAL_IF_LARGER", "false")
    monkeypatch.setenv("WORK_DIR", "/tmp/relay-work")
    monkeypatch.setenv("DEFAULT_QUALITY", "30")

    config = load_runtime_config()

    assert config.async_threshold_bytes == 10 * MB
    assert config.transform_engine == "raster"
    assert config.destination_store == "google_drive"
    assert config.keep_original_if_larger is False
    assert config.work_dir == Path("/tmp/relay-work")
    assert config.default_quality == 30


def test_invalid_values_fall_back_to_defaults(monkeypatch, caplog):
    monkeypatch.setenv("ASYNC_THRESHOLD_MB", "-5")
    monkeypatch.setenv("ASYNC_WORKERS", "many")
    monkeypatch.setenv("TRANSFORM_ENGINE", "imagemagick")
    monkeypatch.setenv("DEFAULT_SCALE", "250")

    with caplog.at_level("WARNING"):
        config = load_runtime_config()

    defaults = RuntimeConfig()
    assert config.async_threshold_mb == defaults.async_threshold_mb
    assert config.async_workers == defaults.async_workers
    assert config.transform_engine == defaults.transform_engine
    assert config.default_scale == defaults.default_scale
    assert "[settings]" in caplog.text


def test_effective_config_masks_secrets(caplog):
    config = RuntimeConfig(api_token="s3cret", salesforce_client_secret="hunter2")

    with caplog.at_level("INFO"):
        log_effective_config(config)

    assert "effective settings" in caplog.text
    assert "s3cret" not in caplog.text
    assert "hunter2" not in caplog.text


def test_store_factories_follow_config():
    config = RuntimeConfig(destination_store="google_drive", source_max_mb=5)

    source = build_source_store(config)
    assert isinstance(source, SalesforceSource)
    assert source.max_payload_bytes == 5 * MB
    assert isinstance(build_destination_store(config), GoogleDriveDestination)


def test_reduction_percent():
    assert reduction_percent(1000, 250) == 75.0
    assert reduction_percent(1000, 1000) == 0.0
    assert reduction_percent(0, 10) == 0.0


def test_redact_url_for_log_drops_query():
    redacted = redact_url_for_log("https://user:pw@example.com/file.pdf?sig=abc#frag")
    assert "sig=abc" not in redacted
    assert "pw" not in redacted
    assert "example.com/file.pdf" in redacted

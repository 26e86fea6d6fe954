"""Source and Destination Store clients."""

from pdf_relay.config import RuntimeConfig
from pdf_relay.stores.base import DestinationStore, SourceStore

__all__ = ["DestinationStore", "SourceStore", "build_destination_store", "build_source_store"]


def _salesforce_connection(config: RuntimeConfig):
    from pdf_relay.stores.salesforce import SalesforceConnection

    return SalesforceConnection(
        instance_url=config.salesforce_instance_url,
        client_id=config.salesforce_client_id,
        client_secret=config.salesforce_client_secret,
        api_version=config.salesforce_api_version,
    )


def build_source_store(config: RuntimeConfig) -> SourceStore:
    if config.source_store == "salesforce":
        from pdf_relay.stores.salesforce import SalesforceSource

        return SalesforceSource(
            _salesforce_connection(config),
            max_payload_bytes=config.source_max_bytes,
            timeout=config.source_timeout_seconds,
        )
    raise ValueError(f"Unknown source store '{config.source_store}'")


def build_destination_store(config: RuntimeConfig) -> DestinationStore:
    kind = config.destination_store
    if kind == "salesforce":
        from pdf_relay.stores.salesforce import SalesforceDestination

        return SalesforceDestination(_salesforce_connection(config), timeout=config.upload_timeout_seconds)
    if kind == "google_drive":
        from pdf_relay.stores.google_drive import GoogleDriveDestination

        return GoogleDriveDestination(
            client_id=config.google_client_id,
            client_secret=config.google_client_secret,
            refresh_token=config.google_refresh_token,
            timeout=config.upload_timeout_seconds,
        )
    if kind == "sharepoint":
        from pdf_relay.stores.sharepoint import SharePointDestination

        return SharePointDestination(
            tenant_id=config.sharepoint_tenant_id,
            client_id=config.sharepoint_client_id,
            client_secret=config.sharepoint_client_secret,
            drive_id=config.sharepoint_drive_id,
            timeout=config.upload_timeout_seconds,
        )
    raise ValueError(f"Unknown destination store '{kind}'")

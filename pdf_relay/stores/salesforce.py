"""Salesforce ContentVersion store (source and destination)."""

import base64
import logging
import re
from typing import Iterator, Optional

import requests

from pdf_relay.core.exceptions import UpstreamError, ValidationError
from pdf_relay.core.models import SourceMetadata, StoreHints, StoredDocument
from pdf_relay.core.utils import size_mb
from pdf_relay.stores.base import (
    DEFAULT_CHUNK_SIZE,
    DestinationStore,
    SourceStore,
    UploadProgressCallback,
)
from pdf_relay.stores.http import call, fetch_access_token, json_body

logger = logging.getLogger(__name__)

STORE_NAME = "Salesforce"
DEFAULT_API_VERSION = "v58.0"
DEFAULT_TIMEOUT_SECONDS = 25
DEFAULT_MAX_PAYLOAD_BYTES = 50 * 1024 * 1024
_RECORD_ID = re.compile(r"^[A-Za-z0-9]{15}(?:[A-Za-z0-9]{3})?$")


class SalesforceConnection:
    """Instance URL plus client-credentials auth for the REST API."""

    def __init__(
        self,
        instance_url: str,
        client_id: str,
        client_secret: str,
        api_version: str = DEFAULT_API_VERSION,
    ) -> None:
        self.instance_url = (instance_url or "").rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.api_version = api_version

    def get_token(self) -> str:
        if not self.instance_url:
            raise UpstreamError.not_configured(STORE_NAME, "SALESFORCE_INSTANCE_URL")
        return fetch_access_token(
            STORE_NAME,
            f"{self.instance_url}/services/oauth2/token",
            {
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )

    def sobject_url(self, path: str) -> str:
        return f"{self.instance_url}/services/data/{self.api_version}/sobjects/{path}"

    def auth_headers(self) -> dict:
        return {"Authorization": f"Bearer {self.get_token()}"}


class SalesforceSource(SourceStore):
    name = STORE_NAME

    def __init__(
        self,
        connection: SalesforceConnection,
        max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.connection = connection
        self.max_payload_bytes = max_payload_bytes
        self.timeout = timeout

    def validate_ref(self, ref: str) -> None:
        if not _RECORD_ID.match(ref or ""):
            raise ValidationError.invalid_field("sourceRef", f"'{ref}' is not a Salesforce ContentVersion ID")

    def fetch_metadata(self, ref: str) -> SourceMetadata:
        url = self.connection.sobject_url(f"ContentVersion/{ref}")
        response = call(
            STORE_NAME,
            "metadata request",
            "GET",
            url,
            params={"fields": "Title,ContentDocumentId,ContentSize"},
            headers=self.connection.auth_headers(),
            timeout=self.timeout,
        )
        record = json_body(STORE_NAME, "metadata request", response)
        raw_size = record.get("ContentSize")
        return SourceMetadata(
            title=record.get("Title") or ref,
            size=int(raw_size) if raw_size is not None else None,
            container_id=record.get("ContentDocumentId"),
        )

    def iter_bytes(self, ref: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        url = self.connection.sobject_url(f"ContentVersion/{ref}/VersionData")
        response = call(
            STORE_NAME,
            "download",
            "GET",
            url,
            headers=self.connection.auth_headers(),
            timeout=self.timeout,
            stream=True,
        )
        try:
            content_length = response.headers.get("content-length")
            if content_length and self.max_payload_bytes and int(content_length) > self.max_payload_bytes:
                raise UpstreamError.too_large(STORE_NAME, size_mb(self.max_payload_bytes))
            for chunk in response.iter_content(chunk_size=chunk_size):
                if chunk:
                    yield chunk
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f"{STORE_NAME} download interrupted: {e}", original_error=e) from e
        finally:
            response.close()


class SalesforceDestination(DestinationStore):
    name = STORE_NAME

    def __init__(
        self,
        connection: SalesforceConnection,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.connection = connection
        self.timeout = timeout

    def store(
        self,
        title: str,
        data: bytes,
        hints: StoreHints,
        on_progress: Optional[UploadProgressCallback] = None,
    ) -> StoredDocument:
        body = {
            "Title": title,
            "PathOnClient": f"{title}.pdf",
            "VersionData": base64.b64encode(data).decode("ascii"),
        }
        if hints.container_id:
            # Inherited container: new version of the same document.
            key = "ContentDocumentId" if hints.inherited else "FirstPublishLocationId"
            body[key] = hints.container_id
        if hints.owner_id:
            body["OwnerId"] = hints.owner_id

        if on_progress:
            on_progress(0, len(data))
        response = call(
            STORE_NAME,
            "upload",
            "POST",
            self.connection.sobject_url("ContentVersion"),
            json=body,
            headers=self.connection.auth_headers(),
            timeout=self.timeout,
        )
        record = json_body(STORE_NAME, "upload", response)
        if on_progress:
            on_progress(len(data), len(data))

        version_id = record.get("id")
        if not version_id:
            raise UpstreamError(f"{STORE_NAME} upload response did not include a record id")
        logger.info(f"File saved to Salesforce: {version_id}")
        return StoredDocument(
            handle=version_id,
            name=title,
            url=f"{self.connection.instance_url}/lightning/r/ContentVersion/{version_id}/view",
        )

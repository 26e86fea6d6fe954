"""SharePoint / OneDrive destination via Microsoft Graph."""

import logging
from typing import Optional
from urllib.parse import quote

from pdf_relay.core.exceptions import UpstreamError
from pdf_relay.core.models import StoreHints, StoredDocument
from pdf_relay.stores.base import DestinationStore, UploadProgressCallback
from pdf_relay.stores.http import call, fetch_access_token, json_body

logger = logging.getLogger(__name__)

STORE_NAME = "SharePoint"
GRAPH_URL = "https://graph.microsoft.com/v1.0"
TOKEN_URL = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"
DEFAULT_TIMEOUT_SECONDS = 600


class SharePointDestination(DestinationStore):
    name = STORE_NAME

    def __init__(
        self,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        drive_id: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.drive_id = drive_id
        self.timeout = timeout

    def get_token(self) -> str:
        if not self.tenant_id:
            raise UpstreamError.not_configured(STORE_NAME, "SHAREPOINT_TENANT_ID")
        return fetch_access_token(
            STORE_NAME,
            TOKEN_URL.format(tenant_id=self.tenant_id),
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "scope": "https://graph.microsoft.com/.default",
                "grant_type": "client_credentials",
            },
        )

    def content_url(self, title: str, parent_id: Optional[str]) -> str:
        filename = quote(f"{title}.pdf")
        return f"{GRAPH_URL}/drives/{self.drive_id}/items/{parent_id or 'root'}:/{filename}:/content"

    def store(
        self,
        title: str,
        data: bytes,
        hints: StoreHints,
        on_progress: Optional[UploadProgressCallback] = None,
    ) -> StoredDocument:
        if not self.drive_id:
            raise UpstreamError.not_configured(STORE_NAME, "SHAREPOINT_DRIVE_ID")
        token = self.get_token()

        if on_progress:
            on_progress(0, len(data))
        logger.info(f"[{STORE_NAME}] Uploading file...")
        response = call(
            STORE_NAME,
            "upload",
            "PUT",
            self.content_url(title, hints.container_id),
            data=data,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/pdf"},
            timeout=self.timeout,
        )
        item = json_body(STORE_NAME, "upload", response)
        if on_progress:
            on_progress(len(data), len(data))

        item_id = item.get("id")
        if not item_id:
            raise UpstreamError(f"{STORE_NAME} upload response did not include an item id")
        return StoredDocument(handle=item_id, name=item.get("name"), url=item.get("webUrl"))

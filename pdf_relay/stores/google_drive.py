"""Google Drive destination using the resumable upload protocol.

Upload is a two-step handshake: a metadata POST opens an upload session and
returns its URL in the ``Location`` header, then the whole body is streamed to
that URL in a single PUT.
"""

import logging
from typing import Iterator, Optional

from pdf_relay.core.exceptions import UpstreamError
from pdf_relay.core.models import StoreHints, StoredDocument
from pdf_relay.core.utils import size_mb
from pdf_relay.stores.base import DestinationStore, UploadProgressCallback
from pdf_relay.stores.http import call, fetch_access_token, json_body

logger = logging.getLogger(__name__)

STORE_NAME = "Google Drive"
TOKEN_URL = "https://oauth2.googleapis.com/token"
UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
VIEW_URL = "https://drive.google.com/file/d/{file_id}/view"
PDF_MIME = "application/pdf"
INIT_TIMEOUT_SECONDS = 30
DEFAULT_UPLOAD_TIMEOUT_SECONDS = 600
DEFAULT_CHUNK_SIZE = 256 * 1024


class GoogleDriveDestination(DestinationStore):
    name = STORE_NAME

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        timeout: float = DEFAULT_UPLOAD_TIMEOUT_SECONDS,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_token = refresh_token
        self.timeout = timeout
        self.chunk_size = chunk_size

    def get_token(self) -> str:
        return fetch_access_token(
            STORE_NAME,
            TOKEN_URL,
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
        )

    def start_session(self, token: str, title: str, total: int, hints: StoreHints) -> str:
        """Open a resumable upload session and return its URL."""
        metadata = {"name": f"{title}.pdf", "mimeType": PDF_MIME}
        if hints.container_id:
            metadata["parents"] = [hints.container_id]
        if hints.owner_id:
            logger.debug(f"[{STORE_NAME}] Owner hint ignored; files belong to the authorized account")

        response = call(
            STORE_NAME,
            "upload initiation",
            "POST",
            UPLOAD_URL,
            params={"uploadType": "resumable"},
            json=metadata,
            headers={
                "Authorization": f"Bearer {token}",
                "X-Upload-Content-Type": PDF_MIME,
                "X-Upload-Content-Length": str(total),
            },
            timeout=INIT_TIMEOUT_SECONDS,
        )
        session_url = response.headers.get("Location") or response.headers.get("location")
        if not session_url:
            raise UpstreamError(f"{STORE_NAME} did not return an upload session URL")
        logger.info(f"[{STORE_NAME}] Upload session created")
        return session_url

    def _stream(self, data: bytes, on_progress: Optional[UploadProgressCallback]) -> Iterator[bytes]:
        total = len(data)
        view = memoryview(data)
        sent = 0
        last_logged = -1
        while sent < total:
            chunk = view[sent:sent + self.chunk_size]
            yield bytes(chunk)
            sent += len(chunk)
            percent = round(sent * 100 / total)
            if percent // 10 > last_logged:
                last_logged = percent // 10
                logger.info(f"[{STORE_NAME}] Upload progress: {percent}%")
            if on_progress:
                on_progress(sent, total)

    def store(
        self,
        title: str,
        data: bytes,
        hints: StoreHints,
        on_progress: Optional[UploadProgressCallback] = None,
    ) -> StoredDocument:
        token = self.get_token()
        total = len(data)
        session_url = self.start_session(token, title, total, hints)

        logger.info(f"[{STORE_NAME}] Streaming {size_mb(total):.2f}MB")
        response = call(
            STORE_NAME,
            "upload",
            "PUT",
            session_url,
            data=self._stream(data, on_progress),
            headers={"Content-Type": PDF_MIME, "Content-Length": str(total)},
            timeout=self.timeout,
        )
        record = json_body(STORE_NAME, "upload", response)
        file_id = record.get("id")
        if not file_id:
            raise UpstreamError(f"{STORE_NAME} upload response did not include a file id")

        logger.info(f"[{STORE_NAME}] File uploaded: {file_id}")
        return StoredDocument(
            handle=file_id,
            name=record.get("name"),
            url=VIEW_URL.format(file_id=file_id),
        )

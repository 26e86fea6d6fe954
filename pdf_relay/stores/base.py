"""Source and Destination Store interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Iterator, Optional

from pdf_relay.core.exceptions import UpstreamError
from pdf_relay.core.models import SourceMetadata, StoreHints, StoredDocument
from pdf_relay.core.utils import size_mb

# on_progress(bytes_sent, bytes_total)
UploadProgressCallback = Callable[[int, int], None]

DEFAULT_CHUNK_SIZE = 64 * 1024


class SourceStore(ABC):
    name: str = "Source store"
    max_payload_bytes: Optional[int] = None

    def validate_ref(self, ref: str) -> None:
        """Reject malformed document references before any network call.

        Raises:
            ValidationError: If ``ref`` cannot identify a document in this store.
        """

    @abstractmethod
    def fetch_metadata(self, ref: str) -> SourceMetadata:
        """Cheap metadata probe (title, size, owning container)."""

    @abstractmethod
    def iter_bytes(self, ref: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """Stream the document body."""

    def fetch_bytes(self, ref: str) -> bytes:
        """Buffer the whole document, enforcing ``max_payload_bytes``."""
        buffer = bytearray()
        for chunk in self.iter_bytes(ref):
            if not chunk:
                continue
            buffer.extend(chunk)
            if self.max_payload_bytes and len(buffer) > self.max_payload_bytes:
                raise UpstreamError.too_large(self.name, size_mb(self.max_payload_bytes))
        if not buffer:
            raise UpstreamError(f"{self.name} returned an empty document")
        return bytes(buffer)


class DestinationStore(ABC):
    name: str = "Destination store"

    @abstractmethod
    def store(
        self,
        title: str,
        data: bytes,
        hints: StoreHints,
        on_progress: Optional[UploadProgressCallback] = None,
    ) -> StoredDocument:
        """Upload ``data`` and return a handle to the stored document."""

"""In-memory stores, engine and clock shared by the test modules."""

import io
from typing import Dict, List, Optional, Tuple

from PyPDF2 import PdfWriter

from pdf_relay.core.models import SourceMetadata, StoredDocument
from pdf_relay.engine.base import TransformEngine
from pdf_relay.stores.base import DestinationStore, SourceStore

MB = 1024 * 1024


def make_pdf(pages: int = 1, width: float = 612, height: float = 792) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=width, height=height)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


class ManualClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSource(SourceStore):
    name = "FakeSource"

    def __init__(self, documents: Optional[Dict[str, Tuple[SourceMetadata, bytes]]] = None,
                 metadata_error: Optional[Exception] = None,
                 download_error: Optional[Exception] = None):
        self.documents = documents or {}
        self.metadata_error = metadata_error
        self.download_error = download_error
        self.metadata_calls = 0
        self.download_calls = 0

    def add(self, ref: str, title: str, data: bytes, size: Optional[int] = None,
            container_id: Optional[str] = "doc-container") -> None:
        reported = len(data) if size is None else size
        self.documents[ref] = (SourceMetadata(title=title, size=reported, container_id=container_id), data)

    def fetch_metadata(self, ref):
        self.metadata_calls += 1
        if self.metadata_error is not None:
            raise self.metadata_error
        return self.documents[ref][0]

    def iter_bytes(self, ref, chunk_size=64 * 1024):
        self.download_calls += 1
        if self.download_error is not None:
            raise self.download_error
        data = self.documents[ref][1]
        for start in range(0, len(data), chunk_size):
            yield data[start:start + chunk_size]


class FakeDestination(DestinationStore):
    name = "FakeDestination"

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.stored: List[dict] = []

    def store(self, title, data, hints, on_progress=None):
        if self.error is not None:
            raise self.error
        if on_progress:
            on_progress(0, len(data))
            on_progress(len(data), len(data))
        handle = f"dest-{len(self.stored) + 1}"
        self.stored.append({"title": title, "data": data, "hints": hints})
        return StoredDocument(handle=handle, name=title, url=f"https://files.example.com/{handle}")


class FakeEngine(TransformEngine):
    """Keeps the first ``ratio`` of the input and reports ``pages`` progress ticks."""

    name = "fake"

    def __init__(self, ratio: float = 0.5, pages: int = 4, error: Optional[Exception] = None,
                 available: bool = True):
        self.ratio = ratio
        self.pages = pages
        self.error = error
        self.available = available
        self.calls = 0

    def transform(self, data, fidelity, on_progress=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        for page in range(1, self.pages + 1):
            if on_progress:
                on_progress(page, self.pages)
        if self.ratio <= 1:
            return data[:max(1, int(len(data) * self.ratio))]
        return data * int(self.ratio) + data[:1]

    def is_available(self):
        return self.available

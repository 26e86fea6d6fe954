"""Transform engine interface and helpers shared by both strategies."""

from __future__ import annotations

import io
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from PyPDF2 import PdfReader

from pdf_relay.core.exceptions import EngineError
from pdf_relay.core.models import Fidelity

logger = logging.getLogger(__name__)

# on_progress(current_unit, total_units)
ProgressCallback = Callable[[int, int], None]

PDF_HEADER = b"%PDF-"
MIN_DPI = 36


class TransformEngine(ABC):
    """Reduce a PDF's size by re-encoding it at a lower fidelity.

    Implementations are lossy but keep page count and page dimensions.
    """

    name: str = "base"

    @abstractmethod
    def transform(
        self,
        data: bytes,
        fidelity: Fidelity,
        on_progress: Optional[ProgressCallback] = None,
    ) -> bytes:
        """Return the transformed document bytes.

        Raises:
            EngineError: If the input is malformed or the tool fails.
        """

    def is_available(self) -> bool:
        return True


def ensure_pdf(data: bytes) -> None:
    if not data or data[:5] != PDF_HEADER:
        raise EngineError.not_a_pdf()


def jpeg_quality(quality: float) -> int:
    """Map quality in [0, 1] linearly onto a 1-100 JPEG quality."""
    return max(1, min(100, round(quality * 100)))


def target_dpi(base_dpi: int, scale: float) -> int:
    return max(MIN_DPI, round(base_dpi * scale))


def count_pages(data: bytes) -> Optional[int]:
    """Page count via PyPDF2, or None if the document cannot be read."""
    try:
        reader = PdfReader(io.BytesIO(data), strict=False)
        if reader.is_encrypted:
            try:
                reader.decrypt("")
            except Exception as de:
                logger.warning(f"PDF flagged encrypted; empty-password decrypt failed ({de})")
        return len(reader.pages)
    except Exception as e:
        logger.warning(f"PDF page count unavailable (will continue): {e}")
        return None

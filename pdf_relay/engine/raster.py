"""In-process raster transform strategy (PyMuPDF).

Each page is rendered to a pixmap, JPEG-encoded and placed as a full-page
image on a new page with the original dimensions. Only one page raster is
alive at a time.
"""

import logging
from typing import Optional

import pymupdf

from pdf_relay.core.exceptions import EngineError
from pdf_relay.core.models import Fidelity
from pdf_relay.engine.base import (
    ProgressCallback,
    TransformEngine,
    ensure_pdf,
    jpeg_quality,
    target_dpi,
)

logger = logging.getLogger(__name__)

PDF_POINTS_PER_INCH = 72
DEFAULT_BASE_DPI = PDF_POINTS_PER_INCH


class RasterEngine(TransformEngine):
    name = "raster"

    def __init__(self, base_dpi: int = DEFAULT_BASE_DPI) -> None:
        self.base_dpi = base_dpi

    def zoom_for(self, fidelity: Fidelity) -> float:
        return target_dpi(self.base_dpi, fidelity.scale) / PDF_POINTS_PER_INCH

    def transform(
        self,
        data: bytes,
        fidelity: Fidelity,
        on_progress: Optional[ProgressCallback] = None,
    ) -> bytes:
        ensure_pdf(data)
        zoom = self.zoom_for(fidelity)
        quality = jpeg_quality(fidelity.quality)

        try:
            source = pymupdf.open(stream=data, filetype="pdf")
        except Exception as e:
            raise EngineError(f"PDF could not be opened: {e}", original_error=e) from e

        try:
            if source.needs_pass:
                raise EngineError.encrypted()
            total = source.page_count
            if total == 0:
                raise EngineError("PDF has no pages")

            logger.info(f"Rasterizing {total} page(s) at zoom={zoom:.2f} jpegq={quality}")
            with pymupdf.open() as output:
                for index in range(total):
                    self._append_page(source, output, index, zoom, quality)
                    if on_progress:
                        on_progress(index + 1, total)
                return output.tobytes(garbage=3, deflate=True, no_new_id=True)
        except EngineError:
            raise
        except Exception as e:
            raise EngineError(f"Page rendering failed: {e}", original_error=e) from e
        finally:
            source.close()

    @staticmethod
    def _append_page(source: "pymupdf.Document", output: "pymupdf.Document", index: int, zoom: float, quality: int) -> None:
        page = source.load_page(index)
        rect = page.rect
        pixmap = page.get_pixmap(matrix=pymupdf.Matrix(zoom, zoom), alpha=False)
        encoded = pixmap.tobytes("jpg", jpg_quality=quality)
        del pixmap

        target = output.new_page(width=rect.width, height=rect.height)
        target.insert_image(target.rect, stream=encoded)

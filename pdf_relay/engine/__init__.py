"""Transform engines. Pick one per deployment with ``create_engine``."""

from pathlib import Path
from typing import Optional

from pdf_relay.engine.base import TransformEngine

ENGINE_NAMES = ("ghostscript", "raster")

__all__ = ["ENGINE_NAMES", "TransformEngine", "create_engine"]


def create_engine(
    name: str = "ghostscript",
    *,
    gs_base_dpi: int = 150,
    gs_min_timeout_seconds: int = 120,
    raster_base_dpi: int = 72,
    work_dir: Optional[Path] = None,
) -> TransformEngine:
    """Build the configured transform strategy."""
    if name == "ghostscript":
        from pdf_relay.engine.ghostscript import GhostscriptEngine

        return GhostscriptEngine(
            base_dpi=gs_base_dpi,
            work_dir=work_dir,
            min_timeout_seconds=gs_min_timeout_seconds,
        )
    if name == "raster":
        from pdf_relay.engine.raster import RasterEngine

        return RasterEngine(base_dpi=raster_base_dpi)
    raise ValueError(f"Unknown transform engine '{name}' (expected one of {', '.join(ENGINE_NAMES)})")

"""Ghostscript transform strategy (external tool).

The document is written to a uniquely named temp file, re-distilled by
Ghostscript's pdfwrite device at the requested preset/resolution, and read
back. Both temp files are removed on every exit path.
"""

import logging
import os
import shutil
import subprocess
import tempfile
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from pdf_relay.core.exceptions import EngineError
from pdf_relay.core.models import Fidelity
from pdf_relay.core.utils import size_mb
from pdf_relay.engine.base import (
    ProgressCallback,
    TransformEngine,
    count_pages,
    ensure_pdf,
    jpeg_quality,
    target_dpi,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_DPI = 150
DEFAULT_MIN_TIMEOUT_SECONDS = 120
SECONDS_PER_MB = 10
# 1-bit scans stay legible below this
MONO_MIN_DPI = 150
# Pins CreationDate/ModDate and the derived trailer /ID so reruns are byte-identical
REPRODUCIBLE_EPOCH = "0"

# (upper quality bound, PDFSETTINGS preset), checked in order
QUALITY_PRESETS = (
    (0.4, "/screen"),
    (0.7, "/ebook"),
    (0.85, "/printer"),
)
MAX_PRESET = "/prepress"


@dataclass(frozen=True)
class GhostscriptSettings:
    preset: str
    resolution: int
    jpeg_quality: int


def get_ghostscript_command() -> Optional[str]:
    """Get Ghostscript binary name for current platform."""
    for name in ["gs", "gswin64c", "gswin32c"]:
        if shutil.which(name):
            return name
    return None


def reproducible_env() -> dict:
    return {**os.environ, "SOURCE_DATE_EPOCH": REPRODUCIBLE_EPOCH}


def select_preset(quality: float) -> str:
    for bound, preset in QUALITY_PRESETS:
        if quality <= bound:
            return preset
    return MAX_PRESET


def resolve_settings(fidelity: Fidelity, base_dpi: int = DEFAULT_BASE_DPI) -> GhostscriptSettings:
    return GhostscriptSettings(
        preset=select_preset(fidelity.quality),
        resolution=target_dpi(base_dpi, fidelity.scale),
        jpeg_quality=jpeg_quality(fidelity.quality),
    )


def build_command(gs_cmd: str, settings: GhostscriptSettings, input_path: Path, output_path: Path) -> List[str]:
    dpi = settings.resolution
    return [
        gs_cmd,
        "-sDEVICE=pdfwrite",
        "-dCompatibilityLevel=1.4",
        f"-dPDFSETTINGS={settings.preset}",
        "-dNOPAUSE",
        "-dBATCH",
        "-dQUIET",
        "-dSAFER",
        f"-dJPEGQ={settings.jpeg_quality}",
        # Force JPEG encoding (converts JPEG2000 to JPEG)
        "-dAutoFilterColorImages=false",
        "-dColorImageFilter=/DCTEncode",
        "-dAutoFilterGrayImages=false",
        "-dGrayImageFilter=/DCTEncode",
        "-dDownsampleColorImages=true",
        "-dColorImageDownsampleType=/Bicubic",
        f"-dColorImageResolution={dpi}",
        "-dColorImageDownsampleThreshold=1.0",
        "-dDownsampleGrayImages=true",
        "-dGrayImageDownsampleType=/Bicubic",
        f"-dGrayImageResolution={dpi}",
        "-dGrayImageDownsampleThreshold=1.0",
        "-dDownsampleMonoImages=true",
        "-dMonoImageDownsampleType=/Subsample",
        f"-dMonoImageResolution={max(dpi, MONO_MIN_DPI)}",
        "-dMonoImageDownsampleThreshold=1.0",
        "-dDetectDuplicateImages=true",
        "-dCompressFonts=true",
        "-dSubsetFonts=true",
        f"-sOutputFile={output_path}",
        str(input_path),
    ]


def translate_ghostscript_error(stderr: str, return_code: int) -> str:
    """Translate Ghostscript stderr to a clear, user-friendly error message.

    Also logs the full stderr for debugging purposes.
    """
    logger.error(f"Ghostscript failed (exit code {return_code}). Full error:\n{stderr}")

    stderr_lower = (stderr or "").lower()

    if 'invalidfileaccess' in stderr_lower or 'password' in stderr_lower:
        return "PDF is password-protected or locked. Please remove the password and try again."

    if 'typecheck' in stderr_lower or 'rangecheck' in stderr_lower:
        return "PDF has corrupted internal data. Try re-saving it from Adobe Acrobat."

    if any(x in stderr_lower for x in ['undefined', 'ioerror', 'syntaxerror', 'eofread']):
        return "PDF is damaged or corrupted. Please use a different copy of the file."

    return f"PDF processing failed (Ghostscript exit code {return_code}). The file may be corrupted."


class GhostscriptEngine(TransformEngine):
    name = "ghostscript"

    def __init__(
        self,
        base_dpi: int = DEFAULT_BASE_DPI,
        work_dir: Optional[Path] = None,
        min_timeout_seconds: int = DEFAULT_MIN_TIMEOUT_SECONDS,
    ) -> None:
        self.base_dpi = base_dpi
        self.work_dir = Path(work_dir) if work_dir else Path(tempfile.gettempdir())
        self.min_timeout_seconds = min_timeout_seconds

    def is_available(self) -> bool:
        return get_ghostscript_command() is not None

    def _temp_paths(self) -> Tuple[Path, Path]:
        stamp = int(time.time() * 1000)
        nonce = uuid.uuid4().hex[:8]
        base = self.work_dir / f"gs_{stamp}_{nonce}"
        return base.with_name(base.name + "_in.pdf"), base.with_name(base.name + "_out.pdf")

    def transform(
        self,
        data: bytes,
        fidelity: Fidelity,
        on_progress: Optional[ProgressCallback] = None,
    ) -> bytes:
        ensure_pdf(data)
        gs_cmd = get_ghostscript_command()
        if not gs_cmd:
            raise EngineError.tool_missing("Ghostscript")

        settings = resolve_settings(fidelity, self.base_dpi)
        total = count_pages(data) or 1
        if on_progress:
            on_progress(0, total)

        self.work_dir.mkdir(parents=True, exist_ok=True)
        input_path, output_path = self._temp_paths()
        file_mb = size_mb(len(data))
        timeout = max(self.min_timeout_seconds, int(file_mb * SECONDS_PER_MB))

        try:
            input_path.write_bytes(data)
            cmd = build_command(gs_cmd, settings, input_path, output_path)
            logger.info(
                f"Compressing {input_path.name} ({file_mb:.1f}MB) "
                f"preset={settings.preset} dpi={settings.resolution} jpegq={settings.jpeg_quality}"
            )

            try:
                result = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    timeout=timeout,
                    env=reproducible_env(),
                )
            except subprocess.TimeoutExpired as e:
                raise EngineError(f"Ghostscript timed out after {timeout}s", original_error=e) from e
            except OSError as e:
                raise EngineError(f"Ghostscript could not be started: {e}", original_error=e) from e

            if result.returncode != 0:
                raise EngineError(translate_ghostscript_error(result.stderr, result.returncode))

            if not output_path.exists():
                raise EngineError("Ghostscript output file not created")

            try:
                output = output_path.read_bytes()
            except OSError as e:
                raise EngineError(f"Could not read Ghostscript output: {e}", original_error=e) from e

            if not output:
                raise EngineError("Ghostscript produced an empty document")

            out_mb = size_mb(len(output))
            logger.info(f"Result: {file_mb:.1f}MB -> {out_mb:.1f}MB")
        finally:
            input_path.unlink(missing_ok=True)
            output_path.unlink(missing_ok=True)

        if on_progress:
            on_progress(total, total)
        return output

"""Document export: RenderSpec -> stored PDF/PNG/SVG file.

CairoSVG rendering is CPU-bound, so conversion and file I/O run in the
default thread pool. Files are written to a temporary name and renamed into
place, so a reader never sees a half-written document.
"""

import asyncio
import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Literal

from rendering.certificates import render_spec_to_svg, svg_to_pdf, svg_to_png
from rendering.layout import RenderSpec
from services.contracts import DocumentHandle, ExportError

logger = logging.getLogger(__name__)

ExportFormat = Literal["pdf", "png", "svg"]

CONTENT_TYPES: dict[str, str] = {
    "pdf": "application/pdf",
    "png": "image/png",
    "svg": "image/svg+xml",
}


def _convert(svg_content: str, fmt: ExportFormat) -> bytes:
    if fmt == "pdf":
        return svg_to_pdf(svg_content)
    if fmt == "png":
        return svg_to_png(svg_content)
    return svg_content.encode("utf-8")


def _write_atomic(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class FileSystemDocumentExporter:
    """Renders certificates to files under a root directory."""

    def __init__(
        self,
        root: Path,
        *,
        fmt: ExportFormat = "pdf",
        logo_href: str | None = None,
    ) -> None:
        self._root = root.resolve()
        self._fmt = fmt
        self._logo_href = logo_href or None

    def _path_for(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root):
            raise ExportError(f"Document key escapes export directory: {key!r}")
        return path

    async def export(self, spec: RenderSpec, *, filename: str) -> DocumentHandle:
        key = f"{filename}.{self._fmt}"
        path = self._path_for(key)
        svg_content = render_spec_to_svg(spec, logo_href=self._logo_href)

        loop = asyncio.get_running_loop()
        try:
            content = await loop.run_in_executor(
                None, _convert, svg_content, self._fmt
            )
            await loop.run_in_executor(None, _write_atomic, path, content)
        except Exception as e:
            logger.warning(
                "certificate.export.failed",
                extra={"key": key, "format": self._fmt, "error": str(e)},
            )
            raise ExportError(f"Could not export {key}: {e}") from e

        return DocumentHandle(
            key=key,
            content_type=CONTENT_TYPES[self._fmt],
            filename=path.name,
            byte_size=len(content),
            sha256=hashlib.sha256(content).hexdigest(),
        )

    async def open(self, handle: DocumentHandle) -> bytes:
        path = self._path_for(handle.key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise ExportError(f"Stored document unavailable: {handle.key}") from e

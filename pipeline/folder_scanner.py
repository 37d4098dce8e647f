"""Scanner client backed by a directory of image files.

Each `scan()` call returns the next file in name order, which makes the
whole workflow runnable without a network scanner: drop `01-fronts.jpg`
and `02-backs.jpg` into the folder and run the CLI.
"""
import asyncio
import logging
from pathlib import Path

from models.photos import ScanOptions
from pipeline.collaborators import ScanProgressCallback
from pipeline.errors import ScannerUnavailable

logger = logging.getLogger(__name__)

_IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".tif", ".tiff"})


class FolderScanner:
    def __init__(self, source_dir: Path):
        self.source_dir = Path(source_dir)
        self._served: set[Path] = set()

    async def discover(self, timeout_s: float) -> list[Path]:
        if not self.source_dir.is_dir():
            logger.warning("Scan folder not found: %s", self.source_dir)
            return []
        return [self.source_dir]

    async def scan(
        self,
        handle: Path,
        options: ScanOptions,
        timeout_s: float,
        on_progress: ScanProgressCallback,
    ) -> bytes:
        on_progress("initiating", 0)
        pending = self._pending(Path(handle))
        if not pending:
            raise ScannerUnavailable(f"No unscanned images left in {handle}")
        on_progress("initiating", 100)

        path = pending[0]
        on_progress("scanning", 0)
        data = await asyncio.wait_for(asyncio.to_thread(path.read_bytes), timeout=timeout_s)
        on_progress("scanning", 100)
        on_progress("downloading", 100)

        self._served.add(path)
        logger.info("Scanned %s (%.2f MB) at %d dpi", path.name, len(data) / 1024 / 1024, options.resolution)
        return data

    def _pending(self, folder: Path) -> list[Path]:
        if not folder.is_dir():
            return []
        return sorted(
            f for f in folder.iterdir()
            if f.is_file() and f.suffix.lower() in _IMAGE_EXTENSIONS and f not in self._served
        )

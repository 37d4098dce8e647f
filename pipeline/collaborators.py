"""Contracts the orchestrator consumes: scanner client, detector, enhancer.

Anything with matching async methods plugs in; the repo ships
`FolderScanner`, `QuadrantDetector` and `PillowEnhancer` as implementations.
"""
from typing import Any, Callable, Literal, Protocol

from models.photos import ScanOptions
from models.processing import DetectionResult, EnhancementOptions, EnhancementResult

ScanStage = Literal["initiating", "scanning", "downloading"]

# (stage, percent within that stage 0-100)
ScanProgressCallback = Callable[[ScanStage, int], None]


class ScannerClient(Protocol):
    async def discover(self, timeout_s: float) -> list[Any]:
        """Return reachable scanner handles, possibly empty."""
        ...

    async def scan(
        self,
        handle: Any,
        options: ScanOptions,
        timeout_s: float,
        on_progress: ScanProgressCallback,
    ) -> bytes:
        """Run one scan job and return the raw image bytes.

        Raises `ScannerUnavailable` when the device cannot be reached.
        """
        ...


class Detector(Protocol):
    async def detect(self, raw_image: bytes, dpi: int) -> DetectionResult: ...


class Enhancer(Protocol):
    async def enhance(self, image: bytes, options: EnhancementOptions) -> EnhancementResult: ...

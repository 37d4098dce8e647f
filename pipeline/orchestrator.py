"""Scan workflow orchestrator.

Drives one batch at a time through

    idle -> scanning_fronts -> processing_fronts -> ready_for_backs
         -> [scanning_backs -> processing_backs -> ready_for_backs]
         -> saving -> complete -> idle

calling the scanner client, detector and enhancer in turn and broadcasting
events to registered listeners. Which moves are legal is decided by
`WorkflowFSM` (pipeline.workflow_fsm); this module keeps the state models
that carry ids, counts and progress.

Guards: every operation fires its first trigger without awaiting before it,
so on a single event loop two callers can never both pass the same guard.
Calls from the wrong state raise `StateConflict` and leave the state
untouched.

Each operation body runs in its own task. `reset()` cancels that task, and
the next operation waits for the cancelled one to wind down before it
touches the scanner, so at most one operation is ever in flight.

Failures inside a running operation are classified (see pipeline.errors),
recorded as the Error state, broadcast as `scan:error` and re-raised to the
caller.
"""
import asyncio
import logging
import shutil
import uuid
from pathlib import Path
from typing import Awaitable, Callable, Literal

from models.events import (
    BatchComplete,
    OrchestratorEvent,
    ScanComplete,
    ScanError,
    ScanProgress,
    ScanStarted,
    StateChanged,
)
from models.photos import BatchResult, DetectedPhoto, PhotoPair, ScanOptions, ScanResult
from models.processing import EnhancementOptions
from models.workflow_state import (
    Complete,
    Error,
    Idle,
    ProcessingBacks,
    ProcessingFronts,
    ReadyForBacks,
    Saving,
    ScanningBacks,
    ScanningFronts,
    WorkflowState,
)
from pipeline.collaborators import Detector, Enhancer, ScannerClient, ScanStage
from pipeline.cropper import crop_photo
from pipeline.enhancer import PRESET_STANDARD
from pipeline.errors import (
    EnhancementFailed,
    NoPhotosDetected,
    OperationSuperseded,
    ScannerUnavailable,
    ScanWorkflowError,
    StateConflict,
    StorageFailed,
    classify,
)
from pipeline.pairing import pair_photos
from pipeline.workflow_fsm import WorkflowFSM
from settings import Settings

logger = logging.getLogger(__name__)

Listener = Callable[[OrchestratorEvent], None]
Side = Literal["front", "back"]
Phase = Literal["scanning", "processing"]

# Scanner stage -> (start, width) of its band in the scanning phase's 0-100 scale.
_SCAN_PROGRESS_BANDS: dict[ScanStage, tuple[int, int]] = {
    "initiating": (0, 10),
    "scanning": (10, 70),
    "downloading": (80, 20),
}

# Phase -> (start, width) of its share of the overall 0-100 scale.
_OVERALL_BANDS: dict[Phase, tuple[int, int]] = {
    "scanning": (0, 50),
    "processing": (50, 50),
}

# Saved batches are always JPEG; the enhancer re-encodes every crop.
_OUTPUT_EXTENSION = "jpg"


def _new_id() -> str:
    return str(uuid.uuid4())


class ScanOrchestrator:
    def __init__(
        self,
        settings: Settings,
        scanner_client: ScannerClient,
        detector: Detector,
        enhancer: Enhancer,
        enhancement_options: EnhancementOptions = PRESET_STANDARD,
    ):
        self.settings = settings
        self.scanner_client = scanner_client
        self.detector = detector
        self.enhancer = enhancer
        self.enhancement_options = enhancement_options

        self._fsm = WorkflowFSM()
        self._state: WorkflowState = Idle()
        self._scanner_handle = None
        self._front_result: ScanResult | None = None
        self._back_result: ScanResult | None = None
        self._listeners: list[Listener] = []
        self._last_progress: dict[tuple[str, str], int] = {}
        # Bumped by reset(); operations started under an older value are stale.
        self._generation = 0
        self._operation: asyncio.Task | None = None
        # Cancelled by reset() but not finished yet.
        self._abandoned: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Listeners and read access
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register `listener` for all events; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_state(self) -> WorkflowState:
        return self._state

    @property
    def front_result(self) -> ScanResult | None:
        return self._front_result

    @property
    def back_result(self) -> ScanResult | None:
        return self._back_result

    async def is_scanner_ready(self) -> bool:
        """Quick discovery check. Caches the first scanner found; never raises."""
        timeout = self.settings.discovery_timeout_s
        try:
            handles = await asyncio.wait_for(self.scanner_client.discover(timeout), timeout=timeout)
        except Exception as exc:
            logger.warning("Scanner discovery failed: %s", exc)
            return False
        self._scanner_handle = handles[0] if handles else None
        return self._scanner_handle is not None

    # ------------------------------------------------------------------
    # Workflow operations
    # ------------------------------------------------------------------

    async def start_front_scan(self, options: ScanOptions | None = None) -> ScanResult:
        scan_id = _new_id()
        self._transition("start_fronts", ScanningFronts(scan_id=scan_id), "start front scan")
        self._emit(ScanStarted(scan_id=scan_id, side="front"))
        return await self._launch(scan_id, self._scan_fronts, scan_id, options or self._default_options())

    async def start_back_scan(self, options: ScanOptions | None = None) -> ScanResult:
        if not self._fsm.may_start_backs():
            raise StateConflict("start back scan", self._state.status)
        front = self._front_result
        if front is None:
            raise RuntimeError("ready_for_backs without a front scan result")

        scan_id = _new_id()
        self._transition(
            "start_backs",
            ScanningBacks(front_scan_id=front.scan_id, back_scan_id=scan_id),
            "start back scan",
        )
        self._emit(ScanStarted(scan_id=scan_id, side="back"))
        return await self._launch(scan_id, self._scan_backs, front, scan_id, options or self._default_options())

    async def complete_batch(self) -> BatchResult:
        """Pair the retained scans, write them to disk and return to Idle.

        The back scan is optional; a fronts-only batch saves pairs without backs.
        """
        if self._front_result is None:
            raise StateConflict("complete batch", self._state.status)

        batch_id = _new_id()
        self._transition("save", Saving(batch_id=batch_id), "complete batch")
        return await self._launch(batch_id, self._save_batch, batch_id, self._front_result, self._back_result)

    def reset(self) -> None:
        """Drop retained scans and return to Idle, from any state.

        An operation still running is cancelled; its caller gets
        `OperationSuperseded` and the state is left alone.
        """
        self._generation += 1
        task, self._operation = self._operation, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            self._abandoned.add(task)
            task.add_done_callback(self._abandoned.discard)
        self._front_result = None
        self._back_result = None
        self._last_progress.clear()
        self._transition("reset", Idle())

    # ------------------------------------------------------------------
    # Operation runner
    # ------------------------------------------------------------------

    async def _launch(self, operation_id: str, body: Callable[..., Awaitable], *args):
        """Run `body` in its own task and record it as the operation `reset()` cancels."""
        generation = self._generation
        task = asyncio.create_task(self._run_operation(generation, operation_id, body, *args))
        self._operation = task
        try:
            return await task
        finally:
            if self._operation is task:
                self._operation = None

    async def _run_operation(self, generation: int, operation_id: str, body: Callable[..., Awaitable], *args):
        # Abandoned operations may still hold the scanner or a writer thread.
        try:
            if self._abandoned:
                await asyncio.wait(set(self._abandoned))
            self._check_current(generation)
            return await body(generation, *args)
        except asyncio.CancelledError as exc:
            self._fail(generation, operation_id, exc)
            if generation != self._generation:
                raise OperationSuperseded("Operation abandoned: orchestrator was reset") from exc
            raise
        except Exception as exc:
            self._fail(generation, operation_id, exc)
            raise

    async def _scan_fronts(self, generation: int, scan_id: str, options: ScanOptions) -> ScanResult:
        result = await self._run_scan(
            generation,
            scan_id,
            "front",
            options,
            lambda progress: ProcessingFronts(scan_id=scan_id, progress=progress),
        )
        self._front_result = result
        self._transition(
            "fronts_processed",
            ReadyForBacks(front_scan_id=scan_id, photos_detected=result.photos_detected),
        )
        self._emit(ScanComplete(scan_id=scan_id, photos_detected=result.photos_detected))
        return result

    async def _scan_backs(self, generation: int, front: ScanResult, scan_id: str, options: ScanOptions) -> ScanResult:
        result = await self._run_scan(
            generation,
            scan_id,
            "back",
            options,
            lambda progress: ProcessingBacks(
                front_scan_id=front.scan_id, back_scan_id=scan_id, progress=progress,
            ),
        )
        # A repeated back scan replaces the previous one.
        self._back_result = result
        self._emit(ScanComplete(scan_id=scan_id, photos_detected=result.photos_detected))
        self._transition(
            "backs_processed",
            ReadyForBacks(front_scan_id=front.scan_id, photos_detected=front.photos_detected),
        )
        return result

    async def _save_batch(
        self, generation: int, batch_id: str, front: ScanResult, back: ScanResult | None
    ) -> BatchResult:
        pairing = pair_photos(front.detected_photos, back.detected_photos if back else [])
        for warning in pairing.warnings:
            logger.warning("Pairing: %s", warning)

        staging = asyncio.create_task(asyncio.to_thread(self._stage_batch, batch_id, pairing.pairs))
        try:
            staging_dir = await asyncio.shield(staging)
        except asyncio.CancelledError:
            # The writer thread cannot be interrupted; let it finish, then drop its output.
            await asyncio.wait({staging})
            self._discard_staging(batch_id)
            raise

        try:
            self._check_current(generation)
        except OperationSuperseded:
            self._discard_staging(batch_id)
            raise
        batch_dir = self._publish_batch(staging_dir, batch_id)

        result = BatchResult(
            batch_id=batch_id,
            pairs_saved=len(pairing.pairs),
            total_photos=front.photos_detected + (back.photos_detected if back else 0),
            output_directory=batch_dir,
        )
        logger.info("Batch %s saved: %d pair(s) → %s", batch_id, result.pairs_saved, batch_dir)
        self._transition("saved", Complete(batch_id=batch_id, photos_saved=result.pairs_saved))
        self._emit(BatchComplete(result=result))
        self.reset()
        return result

    # ------------------------------------------------------------------
    # Scan pipeline
    # ------------------------------------------------------------------

    async def _run_scan(
        self,
        generation: int,
        scan_id: str,
        side: Side,
        options: ScanOptions,
        processing_state: Callable[[int], WorkflowState],
    ) -> ScanResult:
        handle = await self._ensure_scanner()
        self._check_current(generation)

        raw_image = await self._perform_scan(generation, handle, options, scan_id, side)
        self._check_current(generation)

        raw_path = await asyncio.to_thread(self._save_raw_scan, raw_image, scan_id, side, options)
        self._check_current(generation)

        self._transition("fronts_scanned" if side == "front" else "backs_scanned", processing_state(0))
        self._report_processing(scan_id, 30)
        detection = await self.detector.detect(raw_image, options.resolution)
        self._check_current(generation)
        for warning in detection.warnings:
            logger.warning("[%s] Detection: %s", scan_id, warning)

        if not detection.photos:
            raise NoPhotosDetected(f"No photos detected in {side} scan", 0)

        self._report_processing(scan_id, 60)
        photos = await self._crop_and_enhance(raw_image, detection.photos)
        self._check_current(generation)
        self._report_processing(scan_id, 100)

        logger.info("[%s] %s scan: %d photo(s) processed", scan_id, side, len(photos))
        return ScanResult(
            scan_id=scan_id,
            photos_detected=len(photos),
            raw_image_path=raw_path,
            detected_photos=photos,
        )

    async def _ensure_scanner(self):
        if self._scanner_handle is not None:
            return self._scanner_handle
        try:
            handles = await self.scanner_client.discover(self.settings.discovery_timeout_s)
        except ScanWorkflowError:
            raise
        except Exception as exc:
            raise ScannerUnavailable(f"Scanner discovery failed: {exc}") from exc
        if not handles:
            raise ScannerUnavailable("No scanner found on network")
        self._scanner_handle = handles[0]
        return self._scanner_handle

    async def _perform_scan(
        self,
        generation: int,
        handle,
        options: ScanOptions,
        scan_id: str,
        side: Side,
    ) -> bytes:
        logger.info("[%s] Scanning %s at %d dpi", scan_id, side, options.resolution)

        def on_progress(stage: ScanStage, percent: int) -> None:
            if generation != self._generation:
                return
            start, width = _SCAN_PROGRESS_BANDS[stage]
            self._report_progress(scan_id, "scanning", start + round(percent * width / 100))

        try:
            raw_image = await self.scanner_client.scan(
                handle, options, self.settings.scan_timeout_s, on_progress,
            )
        except ScanWorkflowError as exc:
            if isinstance(exc, ScannerUnavailable):
                self._scanner_handle = None  # rediscover on retry
            raise
        except Exception as exc:
            self._scanner_handle = None
            raise ScannerUnavailable(f"Scanner communication failed: {exc}") from exc

        logger.info("[%s] Scan complete: %.2f MB", scan_id, len(raw_image) / 1024 / 1024)
        return raw_image

    def _save_raw_scan(self, raw_image: bytes, scan_id: str, side: Side, options: ScanOptions) -> Path:
        raw_dir = self.settings.raw_dir
        path = raw_dir / f"{scan_id}-{side}.{options.file_extension}"
        try:
            raw_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(raw_image)
        except OSError as exc:
            raise StorageFailed(f"Failed to save raw scan: {exc}") from exc
        return path

    async def _crop_and_enhance(
        self, raw_image: bytes, photos: list[DetectedPhoto]
    ) -> list[DetectedPhoto]:
        """Process all regions concurrently; the first failure cancels the rest."""
        tasks = [asyncio.create_task(self._process_region(raw_image, photo)) for photo in photos]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _process_region(self, raw_image: bytes, photo: DetectedPhoto) -> DetectedPhoto:
        try:
            cropped = await asyncio.to_thread(crop_photo, raw_image, photo.bounds)
            enhanced = await self.enhancer.enhance(cropped, self.enhancement_options)
        except Exception as exc:
            logger.error("Failed to process photo at %s: %s", photo.position, exc)
            raise EnhancementFailed(
                f"Failed to enhance photo at {photo.position}: {exc}", photo.position,
            ) from exc
        return photo.model_copy(update={"image": enhanced.image})

    # ------------------------------------------------------------------
    # Saving
    # ------------------------------------------------------------------

    def _staging_dir(self, batch_id: str) -> Path:
        return self.settings.output_dir / f".{batch_id}.partial"

    def _stage_batch(self, batch_id: str, pairs: list[PhotoPair]) -> Path:
        """Write all pairs into a hidden staging directory next to the final one."""
        staging_dir = self._staging_dir(batch_id)
        try:
            staging_dir.mkdir(parents=True)
            for seq, pair in enumerate(pairs, start=1):
                stem = f"photo-{seq:03d}-{pair.position}"
                (staging_dir / f"{stem}-front.{_OUTPUT_EXTENSION}").write_bytes(pair.front.image)
                if pair.back is not None:
                    (staging_dir / f"{stem}-back.{_OUTPUT_EXTENSION}").write_bytes(pair.back.image)
        except OSError as exc:
            shutil.rmtree(staging_dir, ignore_errors=True)
            raise StorageFailed(f"Failed to save photo pairs: {exc}") from exc
        return staging_dir

    def _publish_batch(self, staging_dir: Path, batch_id: str) -> Path:
        """Rename the staged batch into place; either all of it appears or nothing does."""
        final_dir = self.settings.output_dir / batch_id
        try:
            staging_dir.rename(final_dir)
        except OSError as exc:
            shutil.rmtree(staging_dir, ignore_errors=True)
            raise StorageFailed(f"Failed to save photo pairs: {exc}") from exc
        return final_dir

    def _discard_staging(self, batch_id: str) -> None:
        logger.info("Discarding unfinished batch %s", batch_id)
        shutil.rmtree(self._staging_dir(batch_id), ignore_errors=True)

    # ------------------------------------------------------------------
    # State and event helpers
    # ------------------------------------------------------------------

    def _default_options(self) -> ScanOptions:
        return ScanOptions(
            resolution=self.settings.default_resolution,
            color_mode=self.settings.color_mode,
            format=self.settings.scan_format,
        )

    def _check_current(self, generation: int) -> None:
        if generation != self._generation:
            raise OperationSuperseded("Operation abandoned: orchestrator was reset")

    def _transition(self, trigger: str, state: WorkflowState, operation: str | None = None) -> None:
        """Fire `trigger` on the FSM, then publish `state` as the new state."""
        status = self._fsm.advance(trigger, operation)
        if status != state.status:
            raise RuntimeError(f"Trigger {trigger} led to {status}, not {state.status}")
        self._state = state
        logger.debug("State → %s", state.status)
        self._emit(StateChanged(state=state))

    def _fail(self, generation: int, operation_id: str, exc: BaseException) -> None:
        if generation != self._generation:
            logger.info("Operation %s stopped after reset", operation_id)
            return
        code, recoverable = classify(exc)
        message = str(exc) or type(exc).__name__
        log = logger.warning if recoverable else logger.error
        log("Operation %s failed (%s): %s", operation_id, code, message)
        self._transition("fail", Error(
            message=message, recoverable=recoverable, code=code, operation_id=operation_id,
        ))
        self._emit(ScanError(
            scan_id=operation_id, message=message, code=code, recoverable=recoverable,
        ))

    def _report_processing(self, scan_id: str, progress: int) -> None:
        # Progress is not a transition: the state's field is updated without
        # a state:changed event.
        if isinstance(self._state, (ProcessingFronts, ProcessingBacks)):
            self._state = self._state.model_copy(update={"progress": progress})
        self._report_progress(scan_id, "processing", progress)

    def _report_progress(self, scan_id: str, phase: Phase, progress: int) -> None:
        """Emit scan:progress, dropping repeats and regressions.

        Checked per phase and on the overall scale, so neither number a
        listener sees ever goes down for one scan.
        """
        progress = max(0, min(100, progress))
        start, width = _OVERALL_BANDS[phase]
        overall = start + round(progress * width / 100)
        key, overall_key = (scan_id, phase), (scan_id, "overall")
        if progress <= self._last_progress.get(key, -1) or overall < self._last_progress.get(overall_key, -1):
            return
        self._last_progress[key] = progress
        self._last_progress[overall_key] = overall
        self._emit(ScanProgress(scan_id=scan_id, phase=phase, progress=progress, overall=overall))

    def _emit(self, event: OrchestratorEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed on %s", event.type)

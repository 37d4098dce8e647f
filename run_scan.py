#!/usr/bin/env python3
"""Guided scan workflow: fronts, optional backs, save.

Usage:
    python run_scan.py                         # fronts, prompt for backs, save
    python run_scan.py --skip-backs            # fronts only
    python run_scan.py --preset vintage        # stronger restoration for faded prints
    python run_scan.py --source-dir ./scans    # folder the scanner reads from
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent))

from models.events import OrchestratorEvent
from models.photos import ScanOptions
from pipeline.enhancer import PRESET_LIGHT, PRESET_STANDARD, PRESET_VINTAGE, PillowEnhancer
from pipeline.errors import ScanWorkflowError, user_message
from pipeline.folder_scanner import FolderScanner
from pipeline.grid_detector import QuadrantDetector
from pipeline.orchestrator import ScanOrchestrator
from settings import Settings

logger = logging.getLogger("run_scan")

_PRESETS = {
    "light": PRESET_LIGHT,
    "standard": PRESET_STANDARD,
    "vintage": PRESET_VINTAGE,
}


def _log_event(event: OrchestratorEvent) -> None:
    if event.type == "scan:progress":
        logger.debug("  %3d%% (%s %d%%)", event.overall, event.phase, event.progress)
    elif event.type == "state:changed":
        logger.info("State → %s", event.state.status)
    elif event.type == "scan:complete":
        logger.info("Detected %d photo(s)", event.photos_detected)
    elif event.type == "scan:error":
        logger.error("Scan %s failed: %s", event.scan_id, event.message)
    elif event.type == "batch:complete":
        logger.info("Saved %d pair(s) → %s", event.result.pairs_saved, event.result.output_directory)


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    orchestrator = ScanOrchestrator(
        settings,
        scanner_client=FolderScanner(settings.scan_source_dir),
        detector=QuadrantDetector(),
        enhancer=PillowEnhancer(),
        enhancement_options=_PRESETS[args.preset],
    )
    orchestrator.subscribe(_log_event)

    if not await orchestrator.is_scanner_ready():
        logger.error("No scanner available (source: %s)", settings.scan_source_dir)
        return 1

    options = ScanOptions(
        resolution=args.resolution or settings.default_resolution,
        color_mode=settings.color_mode,
        format=settings.scan_format,
    )

    try:
        logger.info("=== Scanning fronts ===")
        await orchestrator.start_front_scan(options)

        if not args.skip_backs:
            answer = input("Flip the photos and press Enter to scan backs (s to skip): ")
            if answer.strip().lower() != "s":
                logger.info("=== Scanning backs ===")
                await orchestrator.start_back_scan(options)

        logger.info("=== Saving batch ===")
        result = await orchestrator.complete_batch()
    except ScanWorkflowError as exc:
        logger.error("%s", user_message(exc))
        return 2

    logger.info("=== Done → %s ===", result.output_directory)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--skip-backs", action="store_true", dest="skip_backs",
                        help="Save fronts only, without scanning backs")
    parser.add_argument("--preset", choices=sorted(_PRESETS), default="standard",
                        help="Enhancement preset applied to every photo")
    parser.add_argument("--resolution", type=int, choices=(300, 600), default=None,
                        help="Scan resolution in dpi (default from settings)")
    parser.add_argument("--source-dir", type=Path, default=None, dest="source_dir",
                        help="Folder of scan images served in name order")
    parser.add_argument("--output-dir", type=Path, default=None, dest="output_dir",
                        help="Where batch folders are written")
    args = parser.parse_args()

    overrides = {}
    if args.source_dir is not None:
        overrides["scan_source_dir"] = args.source_dir
    if args.output_dir is not None:
        overrides["output_dir"] = args.output_dir
    settings = Settings(**overrides)

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )

    sys.exit(asyncio.run(_run(args, settings)))


if __name__ == "__main__":
    main()

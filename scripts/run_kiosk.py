#!/usr/bin/env python3
"""CLI for running the live audience kiosk: detect, recognise, register and publish."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Union

from signage.config import KioskConfig, load_kiosk_config
from signage.detectors.face_insight import InsightFaceAnalyzer
from signage.io_utils import setup_logging
from signage.pipeline.runner import KioskRunner, VideoSource
from signage.store.identity_store import HttpIdentityStore, IdentityStore, JsonFileIdentityStore

LOGGER = logging.getLogger("scripts.run_kiosk")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the face detection / audience category kiosk")
    parser.add_argument(
        "source",
        nargs="?",
        default="0",
        help="Camera index or video file path (default: camera 0)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs/kiosk.yaml"),
        help="Kiosk configuration YAML",
    )
    parser.add_argument("--store-url", type=str, default=None, help="Identity service base URL")
    parser.add_argument(
        "--users-file",
        type=str,
        default=None,
        help="Local identity JSON file (used when no --store-url is given)",
    )
    parser.add_argument("--state-file", type=str, default=None, help="Write published category state here")
    parser.add_argument("--interval-ms", type=float, default=None, help="Minimum ms between inference calls")
    parser.add_argument("--threshold", type=float, default=None, help="Recognition distance threshold")
    parser.add_argument("--cooldown-ms", type=float, default=None, help="Registration cooldown in ms")
    parser.add_argument("--window-ms", type=float, default=None, help="Dominant category window in ms")
    parser.add_argument(
        "--providers",
        type=str,
        nargs="*",
        default=None,
        help="ONNX execution providers (overrides platform defaults)",
    )
    parser.add_argument("--no-display", action="store_true", help="Run headless without a preview window")
    parser.add_argument("--no-mirror", action="store_true", help="Do not mirror the preview")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {
        "store_url": args.store_url,
        "users_file": args.users_file,
        "state_file": args.state_file,
        "detection_interval_ms": args.interval_ms,
        "match_threshold": args.threshold,
        "registration_cooldown_ms": args.cooldown_ms,
        "category_window_ms": args.window_ms,
        "providers": args.providers or None,
        "mirror_display": False if args.no_mirror else None,
    }


def _parse_source(raw: str) -> Union[int, str]:
    return int(raw) if raw.isdigit() else raw


def build_store(config: KioskConfig) -> IdentityStore:
    if config.store_url:
        LOGGER.info("Using identity service at %s", config.store_url)
        return HttpIdentityStore(config.store_url, timeout=config.store_timeout_s)
    LOGGER.info("Using local identity file %s", config.users_file)
    return JsonFileIdentityStore(Path(config.users_file))


async def _run(args: argparse.Namespace, config: KioskConfig) -> int:
    display = None
    if not args.no_display:
        from signage.viz.overlay import KioskDisplay

        display = KioskDisplay(mirror=config.mirror_display)

    analyzer = InsightFaceAnalyzer(
        model_name=config.model_name,
        providers=config.providers,
        det_size=config.det_size,
        det_thresh=config.det_thresh,
    )
    source = VideoSource(_parse_source(args.source), width=config.camera_width, height=config.camera_height)
    runner = KioskRunner(
        config,
        source,
        analyzer.detect,
        build_store(config),
        renderer=display,
        on_status=display.set_status if display is not None else None,
        on_idle=display.poll_keys if display is not None else None,
    )
    try:
        return await runner.run(should_stop=lambda: display is not None and display.quit_requested)
    finally:
        if display is not None:
            display.close()


def main() -> None:
    args = parse_args()
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    config = load_kiosk_config(args.config, _cli_overrides(args))
    LOGGER.info(
        "Runtime config: interval=%.0fms threshold=%.2f cooldown=%.0fms window=%.0fms fps=%.1f",
        config.detection_interval_ms,
        config.match_threshold,
        config.registration_cooldown_ms,
        config.category_window_ms,
        config.display_fps,
    )
    try:
        ticks = asyncio.run(_run(args, config))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted")
        return
    LOGGER.info("Kiosk stopped after %d display ticks", ticks)


if __name__ == "__main__":
    main()

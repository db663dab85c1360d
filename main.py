"""
Auto-capture guard — entry point.
Run: python main.py --flow selfie
     python main.py --flow document --validate scan.jpg
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys

# Reduce TensorFlow/MediaPipe console noise (INFO and WARNING)
os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "2")

from PySide6.QtWidgets import QApplication

from capture_core.capture import StillImageSource
from capture_core.config import ConfigError, load_settings
from capture_core.models import ValidationOutcome
from capture_core.session import validate_still
from capture_ui.capture_window import CaptureWindow
from detectors import get_detector


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Selfie / document auto-capture")
    parser.add_argument("--flow", choices=("selfie", "document"), default="selfie")
    parser.add_argument("--camera", type=int, default=0, help="camera index")
    parser.add_argument("--video", help="use a video file instead of the camera")
    parser.add_argument("--config", help="JSON settings file")
    parser.add_argument(
        "--validate",
        metavar="IMAGE",
        help="validate an image file and exit; '-' reads base64 or a data URL from stdin",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def read_still(arg: str) -> StillImageSource:
    if arg == "-":
        return StillImageSource.from_base64(sys.stdin.read().strip())
    return StillImageSource.from_file(arg)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    try:
        flow = load_settings(args.config).flow(args.flow)
        detector = get_detector(flow.detector_kind, flow.detector)
        still = read_still(args.validate) if args.validate else None
    except (ConfigError, ValueError, KeyError) as e:
        logging.error("%s", e)
        sys.exit(2)

    if still is not None:
        validation = asyncio.run(validate_still(detector, still))
        print(json.dumps(validation.to_dict(), indent=2))
        sys.exit(0 if validation.outcome is ValidationOutcome.SUCCESS else 1)

    app = QApplication(sys.argv)
    window = CaptureWindow(detector, flow, camera_index=args.camera, video_path=args.video)
    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()

import argparse
import signal
import sys
from pathlib import Path

from .capture import BaseCapture, ImageFolderCapture, SyntheticCapture, USBOpenCVCapture
from .config import LocalizerConfig, load_config
from .intrinsics import camera_info_from_calibration
from .logging_utils import add_file_handler, setup_logger
from .output import CsvOutput
from .pipeline import FramePipeline
from .storage import SessionStorage


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Localize a camera against an ArUco marker map")
    ap.add_argument("--config", required=True, help="Path to JSON/YAML config")

    ap.add_argument("--camera-name")
    ap.add_argument("--markermap-config")
    ap.add_argument("--marker-size", type=float)
    ap.add_argument("--show-output-video", action="store_true")
    ap.add_argument("--device")
    ap.add_argument("--fps", type=int)
    ap.add_argument("--width", type=int)
    ap.add_argument("--height", type=int)
    ap.add_argument("--calib")
    ap.add_argument("--out")
    ap.add_argument("--max-frames", type=int)
    ap.add_argument("--dry-run", action="store_true")
    ap.add_argument("--images", help="Folder of still images to localize instead of a camera")
    ap.add_argument("--save-annotated", action="store_true")

    return ap


def _apply_args(cfg: LocalizerConfig, args: argparse.Namespace) -> LocalizerConfig:
    device = args.device
    if isinstance(device, str) and device.isdigit():
        device = int(device)

    cfg.apply_overrides(
        camera_name=args.camera_name,
        markermap_config=args.markermap_config,
        marker_size=args.marker_size,
        show_output_video=True if args.show_output_video else None,
        device=device,
        fps=args.fps,
        width=args.width,
        height=args.height,
        calibration_path=args.calib,
        session_root=args.out,
        max_frames=args.max_frames,
        dry_run=True if args.dry_run else None,
        image_dir=args.images,
        save_annotated=True if args.save_annotated else None,
    )
    return cfg


def _build_capture(cfg: LocalizerConfig) -> BaseCapture:
    if cfg.dry_run:
        return SyntheticCapture(cfg.fps, cfg.width, cfg.height)
    if cfg.image_dir:
        return ImageFolderCapture(cfg.image_dir, cfg.fps)
    return USBOpenCVCapture(cfg.device, cfg.fps, cfg.width, cfg.height)


def main() -> int:
    ap = _build_parser()
    args = ap.parse_args()

    cfg = load_config(args.config)
    cfg = _apply_args(cfg, args)

    logger = setup_logger(cfg.camera_name)
    camera_info = camera_info_from_calibration(cfg.calibration_path)

    storage = SessionStorage(cfg.session_root, name=f"{cfg.camera_name}_localization")
    session_path = storage.begin()
    storage.write_manifest(cfg.as_dict())
    add_file_handler(logger, cfg.camera_name, str(Path(storage.logs_dir) / "session.log"))

    sink = CsvOutput(storage=storage if cfg.save_annotated else None)
    pipeline = FramePipeline(cfg, sink=sink, logger=logger)

    def _handle_signal(_sig, _frame):
        pipeline.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle_signal)

    logger.info("session started: %s", session_path)
    logger.info("config: %s", cfg.as_dict())

    sink.open(Path(session_path))
    try:
        summary = pipeline.run(_build_capture(cfg), camera_info, max_frames=cfg.max_frames)
    finally:
        sink.close()
    print(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())

from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class FrameNames:
    """Names of the frames in the published tree world -> map -> camera -> body."""

    world: str = "world"
    map: str = "aruco"
    camera: str = "camera"
    body: str = "body"

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class LocalizerConfig:
    camera_name: str = "cam"
    markermap_config: str = ""
    marker_size: float = 0.0298
    show_output_video: bool = False
    corner_refinement: str = "contour"  # "none", "subpix", "contour", "apriltag"
    min_markers: int = 1
    max_reproj_error_px: Optional[float] = None
    world_offset_z: float = -0.4064
    frames: FrameNames = field(default_factory=FrameNames)
    # capture / session settings used by the CLI
    device: int | str = 0
    fps: int = 30
    width: int = 640
    height: int = 480
    calibration_path: str = "calib/camera.yml"
    session_root: str = "data/sessions"
    max_frames: Optional[int] = None
    dry_run: bool = False
    image_dir: str = ""  # replay stills from a folder instead of a live camera
    save_annotated: bool = False

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "LocalizerConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self


def _load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ValueError("YAML config root must be a mapping")
    return data


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def load_config(path: str | Path) -> LocalizerConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")

    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = _load_yaml(p)
    else:
        with p.open("r", encoding="utf-8") as fp:
            raw = json.load(fp)

    if not isinstance(raw, dict):
        raise ValueError("Config root must be a JSON/YAML object")

    cfg = LocalizerConfig()
    cfg.camera_name = str(raw.get("camera_name", cfg.camera_name))
    cfg.markermap_config = str(raw.get("markermap_config", cfg.markermap_config))
    cfg.marker_size = float(raw.get("marker_size", cfg.marker_size))
    cfg.show_output_video = bool(raw.get("show_output_video", cfg.show_output_video))
    cfg.corner_refinement = str(raw.get("corner_refinement", cfg.corner_refinement))
    cfg.min_markers = int(raw.get("min_markers", cfg.min_markers))
    cfg.max_reproj_error_px = _optional_float(
        raw.get("max_reproj_error_px", cfg.max_reproj_error_px)
    )
    cfg.world_offset_z = float(raw.get("world_offset_z", cfg.world_offset_z))
    cfg.device = raw.get("device", cfg.device)
    cfg.fps = int(raw.get("fps", cfg.fps))
    cfg.width = int(raw.get("width", cfg.width))
    cfg.height = int(raw.get("height", cfg.height))
    cfg.calibration_path = str(raw.get("calibration_path", cfg.calibration_path))
    cfg.session_root = str(raw.get("session_root", cfg.session_root))
    cfg.max_frames = raw.get("max_frames", cfg.max_frames)
    if cfg.max_frames is not None:
        cfg.max_frames = int(cfg.max_frames)
    cfg.dry_run = bool(raw.get("dry_run", cfg.dry_run))
    cfg.image_dir = str(raw.get("image_dir", cfg.image_dir))
    cfg.save_annotated = bool(raw.get("save_annotated", cfg.save_annotated))

    frames_raw = raw.get("frames")
    if frames_raw is not None:
        if not isinstance(frames_raw, dict):
            raise ValueError("frames must be a mapping of role -> frame name")
        names = FrameNames()
        names.world = str(frames_raw.get("world", names.world))
        names.map = str(frames_raw.get("map", names.map))
        names.camera = str(frames_raw.get("camera", names.camera))
        names.body = str(frames_raw.get("body", names.body))
        cfg.frames = names

    return cfg

import json
import time
from pathlib import Path

import cv2


class SessionStorage:
    """
    One folder per localization run::

        <root>/<name>_<YYYYmmdd_HHMMSS>/
            config.json        effective configuration
            transforms.csv     written by CsvOutput
            estimates.csv
            annotated/         detection overlays, when enabled
            logs/session.log
    """

    def __init__(self, root: str | Path, name: str = "session"):
        self.root = Path(root)
        self.name = name
        self.session_dir: Path | None = None

    @property
    def annotated_dir(self) -> Path:
        return self._require() / "annotated"

    @property
    def logs_dir(self) -> Path:
        return self._require() / "logs"

    def _require(self) -> Path:
        if self.session_dir is None:
            raise RuntimeError("SessionStorage.begin() has not been called")
        return self.session_dir

    def begin(self) -> str:
        self.session_dir = self.root / f"{self.name}_{time.strftime('%Y%m%d_%H%M%S')}"
        for d in (self.annotated_dir, self.logs_dir):
            d.mkdir(parents=True, exist_ok=True)
        return str(self.session_dir)

    def save_annotated(self, idx: int, image) -> str:
        path = str(self.annotated_dir / f"f{idx:06d}_aruco.jpg")
        if not cv2.imwrite(path, image):
            raise RuntimeError(f"Failed to write {path}")
        return path

    def write_manifest(self, meta: dict) -> None:
        with open(self._require() / "config.json", "w", encoding="utf-8") as fp:
            json.dump(meta, fp, indent=2, default=str)

"""Camera localization against a fixed ArUco marker map."""

from .config import FrameNames, LocalizerConfig
from .pipeline import FramePipeline

__all__ = ["FrameNames", "FramePipeline", "LocalizerConfig"]

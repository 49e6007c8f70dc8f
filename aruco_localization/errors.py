class ConfigurationError(ValueError):
    """Raised at startup when the map, config or calibration is unusable."""


class FrameDecodeError(RuntimeError):
    """Raised when an incoming frame cannot be turned into a BGR image."""

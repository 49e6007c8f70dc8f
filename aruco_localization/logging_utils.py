import logging


LOG_FORMAT = "%(asctime)s %(levelname)s [%(camera)s] %(message)s"


class CameraNameFilter(logging.Filter):
    """Stamps every record with the camera it came from (``%(camera)s``)."""

    def __init__(self, camera_name: str):
        super().__init__()
        self.camera_name = camera_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.camera = self.camera_name
        return True


def _attach(logger: logging.Logger, handler: logging.Handler, camera_name: str) -> logging.Handler:
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(CameraNameFilter(camera_name))
    logger.addHandler(handler)
    return handler


def setup_logger(camera_name: str, level: int = logging.INFO) -> logging.Logger:
    """Logger for one localizer instance, ``aruco_localization.<camera_name>``."""
    logger = logging.getLogger(f"aruco_localization.{camera_name}")
    logger.setLevel(level)
    if not logger.handlers:
        _attach(logger, logging.StreamHandler(), camera_name)
    return logger


def add_file_handler(logger: logging.Logger, camera_name: str, log_path: str) -> logging.Handler:
    return _attach(logger, logging.FileHandler(log_path), camera_name)

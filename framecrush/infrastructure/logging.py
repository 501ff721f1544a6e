import logging
import sys
from pathlib import Path
from typing import Optional

def setup_logging(log_dir: Optional[Path] = None, debug: bool = False, log_path: Optional[Path] = None) -> logging.Logger:
    """
    Setup logging configuration for framecrush.

    Always logs to stderr; additionally writes framecrush.log when a log
    directory or explicit log path is given.
    Returns configured logger instance.

    Args:
        log_dir: Directory for framecrush.log (created if missing)
        debug: If True, enable DEBUG level logging including ffmpeg command lines
        log_path: Optional path to log file (overrides log_dir)
    """
    handlers: list = [logging.StreamHandler(sys.stderr)]

    log_file: Optional[Path] = None
    if log_path:
        log_file = Path(log_path)
    elif log_dir:
        log_file = Path(log_dir) / "framecrush.log"
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    # Configure logging level
    level = logging.DEBUG if debug else logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
        handlers=handlers,
        force=True  # Override any existing configuration
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized: {log_file or 'stderr'} (debug={'ON' if debug else 'OFF'})")

    return logger

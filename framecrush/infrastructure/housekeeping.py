import logging
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

class HousekeepingService:
    """Service for staging directories and temporary artifact cleanup."""

    def ensure_dirs(self, *directories: Path):
        """Creates staging directories; safe to call repeatedly."""
        for directory in directories:
            Path(directory).mkdir(parents=True, exist_ok=True)

    def remove_artifact(self, path: Optional[Union[str, Path]]) -> bool:
        """Best-effort delete. Returns False only when the file could not be removed."""
        if path is None:
            return True
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"CLEANUP_FAILED: {Path(path).name}: {e}")
            return False
        return True

    def sweep_stale(self, directory: Path, pattern: str) -> int:
        """Removes leftovers of a previous run matching pattern; other files are left alone."""
        directory = Path(directory)
        if not directory.is_dir():
            return 0
        removed = 0
        for entry in directory.glob(pattern):
            if entry.is_file() and self.remove_artifact(entry):
                removed += 1
        if removed:
            logger.info(f"Removed {removed} stale artifact(s) from {directory}")
        return removed

import os
from datetime import timedelta
from pathlib import Path

from common.loop import ControlLoop
from common.utils import photo_time, utc_now

SECONDS_PER_HOUR = 3600


class PhotoCleaner(ControlLoop):
    """Deletes pictures whose capture time is outside the retention window."""

    name = "photo_cleaner"

    def __init__(self, interval_hours: float, pictures_dir: str, retention_days: float = 7.0):
        super().__init__(interval=interval_hours * SECONDS_PER_HOUR)
        self.pictures_dir = Path(pictures_dir)
        self.retention = timedelta(days=retention_days)

    async def on_tick(self) -> None:
        self.log.info("Tick. Searching for old pictures")
        self.sweep()

    def sweep(self) -> int:
        """Delete expired pictures. Returns how many were deleted."""
        try:
            names = os.listdir(self.pictures_dir)
        except OSError as e:
            self.log.error("Cannot read pictures directory %s: %s. Skipping photo cleanup",
                           self.pictures_dir, e)
            return 0

        now = utc_now()
        oldest = now - self.retention
        deleted = 0
        for name in sorted(names):
            try:
                taken = photo_time(name)
            except ValueError as e:
                self.log.error("Error parsing photo name %r: %s. Skipping this file", name, e)
                continue
            # Pictures dated in the future are deleted too
            if oldest < taken < now:
                continue
            self.log.info("Deleting photo %s", name)
            try:
                (self.pictures_dir / name).unlink()
                deleted += 1
            except OSError as e:
                self.log.error("Error deleting photo %s: %s", name, e)
        return deleted

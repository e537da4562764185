import asyncio
import logging
from pathlib import Path

log = logging.getLogger(__name__)

# raspistill and libcamera-still both accept these
STILL_ARGS = ["-q", "20", "-n", "-t", "500"]   # quality 20, no preview, 500 ms


class CameraError(Exception):
    """A picture could not be taken."""


class Camera:
    """Still camera driven through its command line tool. One capture at a time."""

    def __init__(self, pictures_dir: str, command: str = "raspistill"):
        self.pictures_dir = Path(pictures_dir)
        self.command = command
        self._lock = asyncio.Lock()

    async def capture(self, name: str) -> Path:
        path = self.pictures_dir / name
        async with self._lock:
            try:
                self.pictures_dir.mkdir(parents=True, exist_ok=True)
                proc = await asyncio.create_subprocess_exec(
                    self.command, *STILL_ARGS, "-o", str(path),
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.PIPE,
                )
                _, stderr = await proc.communicate()
            except OSError as e:
                raise CameraError(f"Could not run {self.command}: {e}") from e
        if proc.returncode != 0:
            raise CameraError(f"{self.command} exited with {proc.returncode}: "
                              f"{stderr.decode(errors='replace').strip()}")
        if not path.exists():
            raise CameraError(f"{self.command} produced no file at {path}")
        log.info("Written image to file: %s", path)
        return path


class StaticCamera:
    """Returns the same existing image for every capture."""

    def __init__(self, image_path: str):
        self.image_path = Path(image_path)

    async def capture(self, name: str) -> Path:
        if not self.image_path.is_file():
            raise CameraError(f"Static image {self.image_path} not found")
        return self.image_path

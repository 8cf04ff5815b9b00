import os
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from metri.core.config import AUDIO_EXTENSIONS, DEFAULT_AUDIO_EXTENSION
from metri.core.errors import TransientStorageFailure
from metri.core.log import get_logger

logger = get_logger("storage")


class ChunkStorage:
    """
    Transient on-disk storage for single audio chunks.
    Every chunk gets its own uuid-named file so concurrent frames never collide.
    """

    def __init__(self, temp_dir: str):
        self._dir = Path(temp_dir)
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._dir

    @contextmanager
    def transient(self, data: bytes, mime_type: str) -> Iterator[str]:
        """Write *data* to a fresh file, yield its path, and remove it on every exit path."""
        path = self._dir / f"{uuid.uuid4().hex}{audio_extension(mime_type)}"
        try:
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            self._discard(path)
            raise TransientStorageFailure(f"Cannot write audio chunk {path}: {e}") from e

        try:
            yield str(path)
        finally:
            self._discard(path)

    @staticmethod
    def _discard(path: Path):
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            # The chunk result is already decided at this point; report and move on
            logger.error("chunk.cleanup.failed path=%s err=%s", path, e)


def audio_extension(mime_type: str) -> str:
    """Pick a file suffix so the transcription backend recognises the container."""
    mime = (mime_type or "").lower()
    for needles, ext in AUDIO_EXTENSIONS:
        if any(n in mime for n in needles):
            return ext
    # default for browser MediaRecorder
    return DEFAULT_AUDIO_EXTENSION

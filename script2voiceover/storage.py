"""Storage backends that receive the finished audio and return a public URL."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath

from script2voiceover.errors import UploadFailed

logger = logging.getLogger(__name__)


class Storage(ABC):
    """Abstract blob store."""

    @abstractmethod
    def upload(self, path: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``path`` (overwriting) and return its public URL.

        Raises:
            UploadFailed: If the backend rejects the write.
        """
        ...


class LocalStorage(Storage):
    """Writes files under a local directory, served by the web app under ``/files``."""

    def __init__(self, root: Path, public_url: str = ""):
        self.root = Path(root).resolve()
        self.public_url = public_url.rstrip("/")

    def resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise UploadFailed(f"Invalid storage path: {path}")
        return self.root.joinpath(*relative.parts)

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        target = self.resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp = target.with_suffix(target.suffix + ".tmp")
            tmp.write_bytes(data)
            tmp.replace(target)
        except OSError as e:
            raise UploadFailed(f"Failed to upload audio: {e}") from e

        logger.debug("Stored %s (%d bytes, %s)", target, len(data), content_type)
        if self.public_url:
            return f"{self.public_url}/files/{PurePosixPath(path)}"
        return target.as_uri()

"""Upload storage: uploaded documents addressed by a generated id."""

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path

from printbridge.dispatcher import FileKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredFile:
    """An uploaded document."""

    id: str
    filename: str
    extension: str
    path: Path


class FileStore:
    """Keeps uploads as ``<id><ext>`` files in one directory."""

    def __init__(self, upload_dir: Path):
        self.upload_dir = upload_dir

    def save(self, filename: str, data: bytes) -> StoredFile:
        """Store an uploaded document.

        Args:
            filename: Original file name, used for its extension.
            data: File contents.

        Returns:
            StoredFile: The stored document.

        Raises:
            UnsupportedFileKind: If the extension is not printable.
        """
        FileKind.from_path(filename)

        file_id = uuid.uuid4().hex
        extension = Path(filename).suffix.lower()
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        path = self.upload_dir / f"{file_id}{extension}"
        path.write_bytes(data)

        logger.info(f"Stored upload {filename} as {path.name} ({len(data)} bytes)")
        return StoredFile(id=file_id, filename=filename, extension=extension, path=path)

    def find(self, file_id: str) -> Path | None:
        """Look up a stored document by id.

        Returns:
            Path | None: File path, or None if unknown.
        """
        try:
            if uuid.UUID(hex=file_id).hex != file_id:
                return None
        except ValueError:
            return None

        if not self.upload_dir.is_dir():
            return None
        matches = sorted(self.upload_dir.glob(f"{file_id}.*"))
        return matches[0] if matches else None

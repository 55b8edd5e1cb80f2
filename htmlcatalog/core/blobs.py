"""Storage for uploaded HTML content, addressed by opaque references."""

import logging
import re
import uuid
from pathlib import Path

from .exceptions import BlobStorageError


_REF_PATTERN = re.compile(r"^[0-9a-f]{32}$")


class FileSystemBlobStorage:
    """
    Keeps each uploaded document as ``<ref>.html`` inside one directory.

    References are random hex strings; anything else is rejected before it
    can be turned into a path.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.logger = logging.getLogger(__name__)

    def store(self, content: bytes) -> str:
        """
        Save content under a fresh reference.

        Returns:
            The storage reference
        """
        if not isinstance(content, (bytes, bytearray)):
            raise BlobStorageError("Content must be bytes")

        ref = uuid.uuid4().hex
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            self._path_for(ref).write_bytes(bytes(content))
        except OSError as e:
            raise BlobStorageError(f"Cannot store content: {e}") from e

        self.logger.debug(f"Stored {len(content)} bytes as {ref}")
        return ref

    def fetch(self, ref: str) -> bytes:
        path = self._path_for(ref)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise BlobStorageError(f"No stored content for reference {ref}") from e
        except OSError as e:
            raise BlobStorageError(f"Cannot read content {ref}: {e}") from e

    def delete(self, ref: str) -> None:
        """Remove stored content; deleting a missing reference is not an error."""
        path = self._path_for(ref)
        try:
            path.unlink()
        except FileNotFoundError:
            self.logger.debug(f"Content {ref} already absent")
        except OSError as e:
            raise BlobStorageError(f"Cannot delete content {ref}: {e}") from e

    def exists(self, ref: str) -> bool:
        try:
            return self._path_for(ref).is_file()
        except BlobStorageError:
            return False

    def _path_for(self, ref: str) -> Path:
        if not isinstance(ref, str) or not _REF_PATTERN.match(ref):
            raise BlobStorageError(f"Invalid storage reference: {ref!r}")
        return self.root / f"{ref}.html"

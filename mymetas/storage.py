"""Avatar bucket backed by a local directory.

Objects are keyed ``<user-id>/<timestamp-ms>.png`` and published under
``avatar_base_url``; the API serves the directory at ``/avatars``.
"""

from datetime import datetime
from pathlib import Path
from typing import Optional

from mymetas.exceptions import FieldError, StorageError, ValidationFailed
from mymetas.logging import logger
from mymetas.utils import timestamp_ms

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


def avatar_key(user_id: int, at: Optional[datetime] = None) -> str:
    """Object key for a new avatar of ``user_id``."""
    return f"{user_id}/{timestamp_ms(at)}.png"


class AvatarStore:
    """Write-only avatar bucket.

    Args:
        root: Bucket directory
        base_url: Public URL prefix (no trailing slash)

    Example:
        >>> store = AvatarStore(Path("/tmp/avatars"), "http://localhost:8000/avatars")
        >>> store.save(1, png_bytes)
        'http://localhost:8000/avatars/1/1718020800000.png'
    """

    def __init__(self, root: Path, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def save(self, user_id: int, data: bytes, at: Optional[datetime] = None) -> str:
        """Store a PNG avatar and return its public URL.

        Raises:
            ValidationFailed: If the payload is empty or not a PNG image
            StorageError: If the bucket cannot be written
        """
        if not data:
            raise ValidationFailed([FieldError("body", "must not be empty", "required")])
        if not data.startswith(PNG_SIGNATURE):
            raise ValidationFailed([FieldError("body", "must be a PNG image", "png")])

        key = avatar_key(user_id, at)
        path = self.root / key
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            logger.error(f"Failed to write avatar {key}: {e}")
            raise StorageError() from e

        logger.info(f"Stored avatar {key} ({len(data)} bytes)")
        return self.url_for(key)


__all__ = ["PNG_SIGNATURE", "avatar_key", "AvatarStore"]

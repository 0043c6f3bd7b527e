"""
Profile picture uploads.

Pictures are written to UPLOAD_DIR as <userId>-<millis><ext> and referenced
from the user record by URL. A picture stored inline (data:image/...) has no
file behind it.
"""

import logging
import time
from pathlib import Path
from typing import Optional

from blueme.config import settings
from blueme.errors import ValidationError
from blueme.storage import RecordStore
from blueme.users import get_user_by_id

logger = logging.getLogger(__name__)

INLINE_PREFIX = "data:image/"


def _file_for_url(url: str, upload_dir: Path, url_prefix: str) -> Optional[Path]:
    """Map a stored picture URL back to its file, or None if it is not one of ours."""
    prefix = url_prefix.rstrip("/") + "/"
    if not url.startswith(prefix):
        return None
    name = url[len(prefix):]
    # Only plain file names, never a path out of the upload directory
    if not name or Path(name).name != name:
        return None
    return upload_dir / name


def delete_previous_picture(store: RecordStore, user_id: str, upload_dir: Path, url_prefix: str) -> None:
    """Remove the user's current picture file. Failures are logged and ignored."""
    user = get_user_by_id(store, user_id)
    picture = (user or {}).get("profilePicture") or ""
    if not picture or picture.startswith(INLINE_PREFIX):
        return

    path = _file_for_url(picture, upload_dir, url_prefix)
    # Files are named <userId>-<millis><ext>; never touch another user's file
    if path is None or not path.name.startswith(f"{user_id}-"):
        return
    try:
        path.unlink(missing_ok=True)
        logger.debug(f"Deleted previous profile picture {path}")
    except OSError as e:
        logger.error(f"Error deleting old profile picture {path}: {e}")


def save_profile_picture(
    store: RecordStore,
    user_id: str,
    filename: Optional[str],
    content_type: Optional[str],
    data: bytes,
    upload_dir: Optional[str] = None,
    url_prefix: Optional[str] = None,
    max_bytes: Optional[int] = None,
) -> str:
    """
    Validate and store an uploaded picture, deleting the previous one.

    Returns:
        URL of the stored picture

    Raises:
        ValidationError: not an image, or larger than max_bytes
    """
    directory = Path(upload_dir or settings.UPLOAD_DIR)
    url_prefix = url_prefix or settings.UPLOAD_URL_PREFIX
    max_bytes = settings.MAX_UPLOAD_BYTES if max_bytes is None else max_bytes

    if not content_type or not content_type.startswith("image/"):
        raise ValidationError("File must be an image")
    if len(data) > max_bytes:
        raise ValidationError(f"File size must be less than {max_bytes // (1024 * 1024)}MB")

    directory.mkdir(parents=True, exist_ok=True)
    delete_previous_picture(store, user_id, directory, url_prefix)

    extension = Path(filename or "").suffix
    file_name = f"{user_id}-{int(time.time() * 1000)}{extension}"
    (directory / file_name).write_bytes(data)
    logger.info(f"Stored profile picture {file_name} ({len(data)} bytes)")

    return f"{url_prefix.rstrip('/')}/{file_name}"

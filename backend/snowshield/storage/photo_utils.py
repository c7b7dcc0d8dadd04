"""
Helpers for naming and validating incident photos.
"""
import os
from datetime import datetime
from typing import Iterable, List, Optional

from snowshield.config_loader import Settings
from snowshield.errors import ValidationError
from snowshield.storage.storage_base import PhotoUpload
from snowshield.timeutils import utcnow

PHOTO_PREFIX = "incidents"


def photo_key(filename: str, now: Optional[datetime] = None) -> str:
    """
    Build a collision-resistant storage key: incidents/<epoch-millis>_<name>.

    Only the basename of the client-supplied filename is kept.
    """
    now = now or utcnow()
    millis = int(now.timestamp() * 1000)
    name = os.path.basename((filename or "").replace("\\", "/")).strip() or "photo"
    return f"{PHOTO_PREFIX}/{millis}_{name}"


def check_photo_count(count: int, settings: Settings) -> None:
    if count > settings.max_photos:
        raise ValidationError(
            f"At most {settings.max_photos} photos can be attached.",
            context={"field": "photos", "count": count},
        )


def check_photo_size(filename: str, size: int, settings: Settings) -> None:
    if size > settings.max_photo_bytes:
        limit_mb = settings.max_photo_bytes // (1024 * 1024)
        raise ValidationError(
            f"Photo '{filename}' exceeds the {limit_mb} MB limit.",
            context={"field": "photos", "size": size},
        )


def validate_photos(photos: Iterable[PhotoUpload], settings: Settings) -> List[PhotoUpload]:
    """
    Enforce photo limits before anything is uploaded.

    Raises:
        ValidationError: too many photos, a photo too large, or a
            MIME type outside the allowed set
    """
    photos = list(photos or [])
    check_photo_count(len(photos), settings)

    for photo in photos:
        if photo.content_type not in settings.allowed_photo_types:
            raise ValidationError(
                f"Photo '{photo.filename}' must be a JPEG or PNG image.",
                context={"field": "photos", "content_type": photo.content_type},
            )
        check_photo_size(photo.filename, photo.size, settings)

    return photos

"""
Tests for photo keys, photo validation and local blob storage.
"""
from datetime import datetime, timezone

import pytest

from snowshield.config_loader import Settings
from snowshield.errors import StorageError, ValidationError
from snowshield.storage.local_storage import LocalPhotoStorage
from snowshield.storage.photo_utils import check_photo_count, check_photo_size, photo_key, validate_photos
from snowshield.storage.storage_base import PhotoUpload


class TestPhotoKey:
    """Storage key naming."""

    def test_key_format(self):
        now = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        assert photo_key("slope.jpg", now) == f"incidents/{int(now.timestamp() * 1000)}_slope.jpg"

    def test_strips_directories(self):
        key = photo_key("C:\\Users\\me\\ridge.png")
        assert key.endswith("_ridge.png")
        assert key.count("/") == 1

    def test_empty_name(self):
        assert photo_key("").endswith("_photo")


class TestValidatePhotos:
    """Limits checked before upload."""

    def test_accepts_jpeg_and_png(self):
        photos = [
            PhotoUpload("a.jpg", "image/jpeg", b"1"),
            PhotoUpload("b.png", "image/png", b"2"),
            PhotoUpload("c.jpg", "image/jpg", b"3"),
        ]
        assert validate_photos(photos, Settings()) == photos

    def test_count_limit(self):
        photos = [PhotoUpload(f"{n}.jpg", "image/jpeg", b"1") for n in range(3)]
        with pytest.raises(ValidationError, match="At most 2"):
            validate_photos(photos, Settings(max_photos=2))

    def test_type(self):
        with pytest.raises(ValidationError, match="JPEG or PNG"):
            validate_photos([PhotoUpload("a.gif", "image/gif", b"1")], Settings())

    def test_size(self):
        settings = Settings(max_photo_bytes=4)
        validate_photos([PhotoUpload("a.jpg", "image/jpeg", b"1234")], settings)
        with pytest.raises(ValidationError):
            validate_photos([PhotoUpload("a.jpg", "image/jpeg", b"12345")], settings)

    def test_count_check_before_reading(self):
        check_photo_count(2, Settings(max_photos=2))
        with pytest.raises(ValidationError, match="At most 2"):
            check_photo_count(3, Settings(max_photos=2))

    def test_size_check_on_raw_length(self):
        settings = Settings(max_photo_bytes=3 * 1024 * 1024)
        check_photo_size("a.jpg", 3 * 1024 * 1024, settings)
        with pytest.raises(ValidationError, match="exceeds the 3 MB limit"):
            check_photo_size("a.jpg", 3 * 1024 * 1024 + 1, settings)


class TestLocalPhotoStorage:
    """Filesystem storage under a media root."""

    def test_upload_and_delete(self, tmp_path):
        storage = LocalPhotoStorage(str(tmp_path), "/media/")
        url = storage.upload("incidents/1_a.jpg", b"data", "image/jpeg")

        assert url == "/media/incidents/1_a.jpg"
        assert (tmp_path / "incidents" / "1_a.jpg").read_bytes() == b"data"

        storage.delete("incidents/1_a.jpg")
        assert not (tmp_path / "incidents" / "1_a.jpg").exists()

    def test_write_once(self, tmp_path):
        storage = LocalPhotoStorage(str(tmp_path))
        storage.upload("incidents/1_a.jpg", b"data", "image/jpeg")
        with pytest.raises(StorageError) as exc_info:
            storage.upload("incidents/1_a.jpg", b"other", "image/jpeg")
        assert exc_info.value.code == "aborted"

    def test_delete_missing_is_ignored(self, tmp_path):
        LocalPhotoStorage(str(tmp_path)).delete("incidents/none.jpg")

    def test_rejects_escaping_key(self, tmp_path):
        storage = LocalPhotoStorage(str(tmp_path / "media"))
        with pytest.raises(StorageError):
            storage.upload("../outside.jpg", b"data", "image/jpeg")

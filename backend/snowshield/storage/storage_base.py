"""
Object storage interface and base types.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class PhotoUpload:
    """A photo file attached to an incident submission."""
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


class PhotoStorage(ABC):
    """
    Abstract base class for blob storage backends.
    Blobs are write-once; a key is never overwritten.
    """

    @abstractmethod
    def upload(self, key: str, data: bytes, content_type: str) -> str:
        """
        Store a blob.

        Args:
            key: Storage key, e.g. 'incidents/1700000000000_slope.jpg'
            data: File contents
            content_type: MIME type of the file

        Returns:
            Public download URL for the stored blob
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a blob. Missing keys are ignored."""
        pass

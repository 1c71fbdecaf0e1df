import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from roomsplit.domain.models import ReceiptFile

RECEIPTS_FOLDER = "receipts"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def safe_filename(filename: str) -> str:
    """Strip directories and replace characters that don't belong in a path."""
    name = Path(filename).name or "upload"
    return _UNSAFE_CHARS.sub("_", name)


def owner_folder(owner_id: str, folder: str = RECEIPTS_FOLDER) -> str:
    """The "{folder}/{owner}/" prefix every blob of owner_id lives under."""
    return f"{folder}/{safe_filename(owner_id)}/"


class StorageError(Exception):
    """Raised when a blob can't be written, read or deleted."""
    pass


class ObjectNotFoundError(StorageError):
    """Raised when a blob doesn't exist."""
    pass


@dataclass
class StoredObject:
    """Where a blob ended up: public URL plus the internal path token."""
    url: str
    path: str


class MediaStore(ABC):
    """
    Abstract blob store for receipt images and avatars.

    Paths are namespaced by owner: "{folder}/{owner_id}/{name}".
    """

    @abstractmethod
    def store(
        self,
        owner_id: str,
        file: ReceiptFile,
        folder: str = RECEIPTS_FOLDER,
        unique: bool = True,
    ) -> StoredObject:
        """
        Write a file for an owner.

        Args:
            owner_id: User the file belongs to
            file: The file to store
            folder: Top-level namespace ("receipts", "avatars")
            unique: Prefix the filename with a timestamp so uploads
                never overwrite each other

        Returns:
            StoredObject with the public URL and path

        Raises:
            StorageError: On permission, quota or I/O failure
        """
        pass

    @abstractmethod
    def remove(self, path: str) -> None:
        """
        Delete the object at path.

        A missing object is not an error.

        Raises:
            StorageError: On any other failure
        """
        pass

    @abstractmethod
    def resolve_url(self, path: str) -> str:
        """Derive the public URL for a stored path."""
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass

import logging
import time
from pathlib import Path
from typing import Callable
from urllib.parse import quote

from roomsplit.domain.models import ReceiptFile
from roomsplit.storage.base import (
    RECEIPTS_FOLDER,
    MediaStore,
    ObjectNotFoundError,
    StorageError,
    StoredObject,
    owner_folder,
    safe_filename,
)

logger = logging.getLogger(__name__)


class LocalMediaStore(MediaStore):
    """
    Filesystem implementation of the MediaStore.

    Objects live under `root`, public URLs are `base_url/<path>` and are
    expected to be served by whatever hosts the media directory.
    """

    def __init__(
        self,
        root: Path | str,
        base_url: str,
        clock: Callable[[], float] = time.time,
    ):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self._clock = clock

    def store(
        self,
        owner_id: str,
        file: ReceiptFile,
        folder: str = RECEIPTS_FOLDER,
        unique: bool = True,
    ) -> StoredObject:
        name = safe_filename(file.filename)
        if unique:
            name = f"{int(self._clock() * 1000)}_{name}"

        path = f"{owner_folder(owner_id, folder)}{name}"
        target = self._resolve(path)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(file.content)
        except OSError as e:
            raise StorageError(f"Could not store '{path}': {e}") from e

        logger.debug("Stored %d bytes at %s", len(file.content), path)
        return StoredObject(url=self.resolve_url(path), path=path)

    def remove(self, path: str) -> None:
        try:
            self._delete(path)
        except ObjectNotFoundError:
            logger.info("Nothing to delete at %s, already gone", path)

    def _delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink()
        except FileNotFoundError as e:
            raise ObjectNotFoundError(f"No object at '{path}'") from e
        except OSError as e:
            raise StorageError(f"Could not delete '{path}': {e}") from e

    def resolve_url(self, path: str) -> str:
        return f"{self.base_url}/{quote(path)}"

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def _resolve(self, path: str) -> Path:
        """Map a path token to a file under root, refusing anything outside it."""
        root = self.root.resolve()
        target = (root / path).resolve()
        if not target.is_relative_to(root) or target == root:
            raise StorageError(f"Path '{path}' is outside the media store")
        return target

    def __repr__(self) -> str:
        return f"LocalMediaStore(root={self.root}, base_url={self.base_url})"

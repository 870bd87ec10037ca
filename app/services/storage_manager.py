import os
import posixpath
from pathlib import Path
from typing import AsyncIterator, Tuple

import aiofiles
import aiofiles.os
from starlette.datastructures import UploadFile

from logger_config import setup_logger

CHUNK_SIZE = 8192  # 8KB chunks

logger = setup_logger()


class StorageManager:
    """Flat directory of shared files, addressed by filename only."""

    def __init__(self, storage_dir: Path):
        self.storage_dir = Path(storage_dir)

    async def ensure_storage_dir(self):
        """Create the storage directory and any missing parents."""
        await aiofiles.os.makedirs(self.storage_dir, exist_ok=True)

    def upload_path(self, filename: str) -> Path:
        """Destination for an uploaded file.

        The client-supplied name is used verbatim, separators and ``..``
        included. Only authenticated callers reach this, unlike
        ``download_path`` which must confine arbitrary input.
        """
        return Path(f"{self.storage_dir}/{filename}")

    def download_path(self, filename: str) -> Path:
        """Resolve a requested filename to a path inside the storage directory."""
        # Rooting at "/" first lets normpath eat every leading ".."
        rooted = posixpath.normpath(posixpath.join("/", filename))
        relative = rooted.lstrip("/")
        if not relative:
            return self.storage_dir
        return self.storage_dir / relative

    async def save_upload(self, file: UploadFile) -> Tuple[Path, int]:
        """Stream an uploaded file to disk, overwriting any previous one.

        Returns:
            The destination path and the number of bytes written.

        Raises:
            OSError: if the directory or file cannot be created or written.
                A partially written file is left in place.
        """
        await self.ensure_storage_dir()

        destination = self.upload_path(file.filename)
        written = 0
        async with aiofiles.open(destination, 'wb') as f:
            while chunk := await file.read(CHUNK_SIZE):
                written += len(chunk)
                await f.write(chunk)

        logger.debug(f"Wrote {written} bytes to {destination}")
        return destination, written

    async def stat_download(self, filename: str) -> Tuple[Path, os.stat_result]:
        """Locate a stored file for download without opening it.

        Returns:
            The resolved path and its ``os.stat_result``.

        Raises:
            FileNotFoundError: if nothing, or something other than a regular
                file, lives at the resolved path.
            PermissionError: if the file cannot be read.
        """
        path = self.download_path(filename)
        if not await aiofiles.os.path.isfile(path):
            raise FileNotFoundError(str(path))
        if not await aiofiles.os.access(path, os.R_OK):
            raise PermissionError(str(path))

        return path, await aiofiles.os.stat(path)


async def iter_file(path: Path) -> AsyncIterator[bytes]:
    """Stream a file in chunks; it is only opened once the body is consumed."""
    async with aiofiles.open(path, 'rb') as file:
        while chunk := await file.read(CHUNK_SIZE):
            yield chunk

import io
import os
from unittest.mock import patch

import aiofiles
import pytest
from starlette.datastructures import UploadFile

from app.services.storage_manager import StorageManager, iter_file


@pytest.fixture
def storage_manager(storage_dir):
    return StorageManager(storage_dir)


@pytest.mark.parametrize("name", [
    "../../etc/passwd",
    "/etc/passwd",
    "a/../../b",
    "..",
    "./../x",
    "....//../y",
])
def test_download_path_stays_under_storage_dir(storage_manager, storage_dir, name):
    resolved = storage_manager.download_path(name).resolve()
    root = storage_dir.resolve()
    assert resolved == root or root in resolved.parents


def test_download_path_collapses_traversal(storage_manager, storage_dir):
    assert storage_manager.download_path("../../etc/passwd") == storage_dir / "etc" / "passwd"
    assert storage_manager.download_path("/") == storage_dir
    assert storage_manager.download_path("docs/./report.txt") == storage_dir / "docs" / "report.txt"


def test_upload_path_is_verbatim(storage_manager, storage_dir):
    assert storage_manager.upload_path("x.txt") == storage_dir / "x.txt"
    # Absolute names stay below the root, relative climbs are not collapsed
    assert storage_manager.upload_path("/etc/x") == storage_dir / "etc" / "x"
    assert storage_manager.upload_path("../x") == storage_dir / ".." / "x"


@pytest.mark.asyncio
async def test_save_upload_creates_dir_and_overwrites(storage_manager, storage_dir):
    first = UploadFile(file=io.BytesIO(b"first, and longer than the second"), filename="a.txt")
    path, written = await storage_manager.save_upload(first)
    assert path == storage_dir / "a.txt"
    assert written == len(b"first, and longer than the second")

    second = UploadFile(file=io.BytesIO(b"second"), filename="a.txt")
    _, written = await storage_manager.save_upload(second)
    assert written == 6
    assert (storage_dir / "a.txt").read_bytes() == b"second"


@pytest.mark.asyncio
async def test_save_upload_missing_subdirectory_fails(storage_manager):
    upload = UploadFile(file=io.BytesIO(b"x"), filename="missing/x.txt")
    with pytest.raises(OSError):
        await storage_manager.save_upload(upload)


@pytest.mark.asyncio
async def test_stat_download_streams_whole_file(storage_manager, storage_dir):
    storage_dir.mkdir()
    content = bytes(range(256)) * 100
    (storage_dir / "big.bin").write_bytes(content)

    path, stat = await storage_manager.stat_download("big.bin")
    assert stat.st_size == len(content)

    chunks = [chunk async for chunk in iter_file(path)]
    assert len(chunks) > 1
    assert b"".join(chunks) == content


@pytest.mark.asyncio
async def test_stat_download_rejects_directories(storage_manager, storage_dir):
    (storage_dir / "sub").mkdir(parents=True)
    with pytest.raises(FileNotFoundError):
        await storage_manager.stat_download("sub")
    with pytest.raises(FileNotFoundError):
        await storage_manager.stat_download("missing.txt")


@pytest.mark.asyncio
async def test_stat_download_leaves_file_closed_until_streamed(storage_manager, storage_dir):
    storage_dir.mkdir()
    (storage_dir / "a.txt").write_bytes(b"abc")

    with patch("app.services.storage_manager.aiofiles.open", wraps=aiofiles.open) as opened:
        path, _ = await storage_manager.stat_download("a.txt")
        body = iter_file(path)
        # Nothing is opened for a response body that is never iterated
        assert opened.call_count == 0

        assert [chunk async for chunk in body] == [b"abc"]
        assert opened.call_count == 1


@pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0, reason="root can read anything")
@pytest.mark.asyncio
async def test_stat_download_unreadable_file(storage_manager, storage_dir):
    storage_dir.mkdir()
    locked = storage_dir / "locked.txt"
    locked.write_bytes(b"locked")
    locked.chmod(0)
    try:
        with pytest.raises(PermissionError):
            await storage_manager.stat_download("locked.txt")
    finally:
        locked.chmod(0o644)

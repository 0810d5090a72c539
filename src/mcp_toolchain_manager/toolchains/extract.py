"""Archive extraction as a stream of events."""

import asyncio
import os
import tarfile
import zipfile
from pathlib import Path
from typing import AsyncIterator, Iterator, List, Union

from mcp_toolchain_manager.logging import get_logger
from mcp_toolchain_manager.types import (
    ExtractCompleted,
    ExtractEvent,
    ExtractFailed,
    ExtractProgress,
)

logger = get_logger(__name__)

Archive = Union[zipfile.ZipFile, tarfile.TarFile]

ARCHIVE_HANDLERS = {
    ".zip": zipfile.ZipFile,
    ".tar.gz": tarfile.open,
    ".tgz": tarfile.open,
}


def archive_format(archive_path: Path) -> str:
    if len(archive_path.suffixes) > 1 and "".join(archive_path.suffixes[-2:]) in ARCHIVE_HANDLERS:
        return "".join(archive_path.suffixes[-2:])
    return archive_path.suffix


def get_archive_members(archive: Archive) -> List[Union[zipfile.ZipInfo, tarfile.TarInfo]]:
    if isinstance(archive, zipfile.ZipFile):
        return archive.infolist()
    return archive.getmembers()


def _member_name(member: Union[zipfile.ZipInfo, tarfile.TarInfo]) -> str:
    return member.filename if isinstance(member, zipfile.ZipInfo) else member.name


def _check_member(dest: Path, name: str) -> None:
    target = (dest / name).resolve()
    if target != dest and dest not in target.parents:
        raise ValueError(f"Archive entry escapes destination: {name}")


def _extract_member(archive: Archive, member, dest: Path) -> None:
    if isinstance(archive, zipfile.ZipFile):
        extracted = Path(archive.extract(member, dest))
        mode = member.external_attr >> 16
        if mode and os.name != "nt" and not member.is_dir():
            extracted.chmod(mode & 0o777)
    elif hasattr(tarfile, "data_filter"):
        archive.extract(member, dest, filter="data")
    else:
        archive.extract(member, dest)


def iter_extract_events(archive_path: Path, dest: Path) -> Iterator[ExtractEvent]:
    """Extract ``archive_path`` into ``dest`` one entry at a time.

    Yields an ``ExtractProgress`` after every entry and ends with exactly one
    ``ExtractCompleted`` or ``ExtractFailed``.
    """
    fmt = archive_format(archive_path)
    handler = ARCHIVE_HANDLERS.get(fmt)
    if handler is None:
        yield ExtractFailed(ValueError(f"Unsupported archive format: {fmt}"))
        return

    dest = Path(dest).resolve()
    try:
        dest.mkdir(parents=True, exist_ok=True)
        with handler(archive_path) as archive:
            members = get_archive_members(archive)
            total = len(members)
            for index, member in enumerate(members, start=1):
                _check_member(dest, _member_name(member))
                _extract_member(archive, member, dest)
                yield ExtractProgress(current=index, total=total)
    except (OSError, ValueError, zipfile.BadZipFile, tarfile.TarError) as e:
        logger.error(
            {"event": "extract_failed", "archive": str(archive_path), "error": str(e)}
        )
        yield ExtractFailed(e)
        return

    logger.info(
        {"event": "archive_extracted", "archive": str(archive_path), "extracted_to": str(dest)}
    )
    yield ExtractCompleted(dest)


async def extract_events(archive_path: Path, dest: Path) -> AsyncIterator[ExtractEvent]:
    """Run extraction in a worker thread and deliver its events on the loop."""
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def produce() -> None:
        try:
            for event in iter_extract_events(archive_path, dest):
                loop.call_soon_threadsafe(queue.put_nowait, event)
        except Exception as e:
            loop.call_soon_threadsafe(queue.put_nowait, ExtractFailed(e))

    worker = asyncio.ensure_future(asyncio.to_thread(produce))
    try:
        while True:
            event = await queue.get()
            yield event
            if not isinstance(event, ExtractProgress):
                break
    finally:
        await worker

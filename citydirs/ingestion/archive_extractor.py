# -*- coding: utf-8 -*-
"""
Streaming reader for city directory volume archives.

Each volume is a gzip-compressed tar of hOCR pages. The archive is read as a
stream (tarfile stream mode), one member at a time, so memory use does not
grow with archive size and nothing is read ahead of the consumer.

Page identifiers come from the member filename:

    25.56886389.c6725860-7ce9-0134-fb06-00505686a51c.processed.hocr
    |  |        |
    |  |        page uuid
    |  image id
    page number

Example:
    from citydirs.ingestion.archive_extractor import read_volume_pages

    for page in read_volume_pages(Path("data/download"), volume):
        print(page.page_num, len(page.hocr))
"""
# Standard library
import tarfile
import zlib
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Tuple

# Local
from citydirs.utils.config import PAGE_SUFFIX
from citydirs.utils.dataclasses import PageRecord, VolumeManifest
from citydirs.utils.errors import ArchiveReadError
from citydirs.utils.logger import get_logger

logger = get_logger(__name__)

# Everything tarfile/gzip raise on a corrupt or truncated stream
_READ_ERRORS = (tarfile.TarError, OSError, EOFError, zlib.error)


def archive_filename(uuid: str) -> str:
    """Archive filename of a volume, as served and as stored locally."""
    return f"{uuid}.tar.gz"


def parse_page_filename(name: str) -> Optional[Tuple[int, str, str]]:
    """
    Parse (page_num, image_id, page_uuid) from an archive member name.

    Directories in the member path are ignored.

    Returns:
        Tuple of identifiers, or None if the name does not follow
        <pageNum>.<imageId>.<pageUuid>[.<suffix>...].hocr
    """
    basename = name.rsplit('/', 1)[-1]
    parts = basename.split('.')
    if len(parts) < 4:
        return None

    try:
        page_num = int(parts[0])
    except ValueError:
        return None

    image_id, page_uuid = parts[1], parts[2]
    if not image_id or not page_uuid:
        return None

    return page_num, image_id, page_uuid


def extract_pages(
    stream: BinaryIO,
    volume: VolumeManifest,
    suffix: str = PAGE_SUFFIX,
    archive: Optional[str] = None,
) -> Iterator[PageRecord]:
    """
    Stream page records out of a (gzip-compressed) tar byte stream.

    Members whose name does not end with suffix are skipped. Pages are yielded
    in archive order.

    Args:
        stream: Readable binary stream positioned at the start of the archive
        volume: Manifest entry the archive belongs to
        suffix: Page content suffix
        archive: Archive name used in error messages

    Yields:
        PageRecord per page member

    Raises:
        ArchiveReadError: On a corrupt, truncated or unreadable archive
    """
    label = archive or volume.uuid

    try:
        tar = tarfile.open(fileobj=stream, mode='r|*')
    except _READ_ERRORS as e:
        raise ArchiveReadError(f"Cannot open archive {label}: {e}", archive=label) from e

    with tar:
        members = iter(tar)
        while True:
            try:
                member = next(members)
            except StopIteration:
                break
            except _READ_ERRORS as e:
                raise ArchiveReadError(f"Corrupt archive {label}: {e}", archive=label) from e

            if not member.isfile() or not member.name.endswith(suffix):
                continue

            identifiers = parse_page_filename(member.name)
            if identifiers is None:
                logger.warning(f"Skipping {member.name} in {label}: unexpected filename")
                continue

            try:
                body = tar.extractfile(member).read()
            except _READ_ERRORS as e:
                raise ArchiveReadError(
                    f"Cannot read {member.name} from {label}: {e}", archive=label
                ) from e

            page_num, image_id, page_uuid = identifiers
            yield PageRecord(
                volume=volume,
                hocr=body.decode('utf-8', errors='replace'),
                page_num=page_num,
                image_id=image_id,
                page_uuid=page_uuid,
            )


def read_volume_pages(
    download_dir: Path,
    volume: VolumeManifest,
    suffix: str = PAGE_SUFFIX,
) -> Iterator[PageRecord]:
    """
    Stream the pages of a downloaded volume archive.

    The file is opened only when iteration starts and is closed when the
    iterator is exhausted, fails, or is closed early.

    Raises:
        ArchiveReadError: If the archive is missing or corrupt
    """
    path = Path(download_dir) / archive_filename(volume.uuid)

    try:
        f = open(path, 'rb')
    except OSError as e:
        raise ArchiveReadError(f"Cannot open archive {path}: {e}", archive=str(path)) from e

    with f:
        logger.info(f"Reading city directory {volume.year_label} ({volume.uuid})")
        yield from extract_pages(f, volume, suffix=suffix, archive=str(path))

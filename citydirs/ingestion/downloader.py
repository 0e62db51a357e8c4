# -*- coding: utf-8 -*-
"""
Concurrent downloader for volume archives.

Downloads <uuid>.tar.gz for every manifest entry using a thread pool with a
configurable worker cap. download_all() returns only when every download has
finished, so the parse stage never sees a partially written archive.

A failed download is not fatal: the response body (usually an XML error
document) is kept as <uuid>.xml so the parse stage does not find an archive for
that volume, and the remaining downloads continue.

Example:
    downloader = ArchiveDownloader(base_url, Path("data/download"), max_workers=4)
    downloaded = downloader.download_all(volumes)
"""
# Standard library
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, List

# Third-party
import requests
from tqdm import tqdm

# Local
from citydirs.ingestion.archive_extractor import archive_filename
from citydirs.utils.config import DOWNLOAD_CHUNK_SIZE, DOWNLOAD_TIMEOUT
from citydirs.utils.dataclasses import VolumeManifest
from citydirs.utils.errors import DownloadError
from citydirs.utils.logger import get_logger

logger = get_logger(__name__)


class ArchiveDownloader:
    """
    Downloads volume archives into one directory.

    Features:
    - Streamed writes (archives are never held in memory)
    - ThreadPoolExecutor with configurable workers
    - Failed downloads renamed to <uuid>.xml and reported, not raised
    """

    def __init__(
        self,
        base_url: str,
        download_dir: Path,
        max_workers: int = 4,
        timeout: int = DOWNLOAD_TIMEOUT,
        session: requests.Session = None,
    ):
        """
        Args:
            base_url: URL prefix; archive URL is base_url + "<uuid>.tar.gz"
            download_dir: Destination directory (created if missing)
            max_workers: Maximum concurrent downloads
            timeout: Per-request timeout in seconds
            session: Optional requests session (shared connection pool)
        """
        self.base_url = base_url
        self.download_dir = Path(download_dir)
        self.download_dir.mkdir(parents=True, exist_ok=True)
        self.max_workers = max_workers
        self.timeout = timeout
        self.session = session or requests.Session()

    def archive_url(self, volume: VolumeManifest) -> str:
        return self.base_url + archive_filename(volume.uuid)

    def download_volume(self, volume: VolumeManifest) -> Path:
        """
        Download one archive.

        Returns:
            Path of the downloaded archive

        Raises:
            DownloadError: On a network or HTTP error (destination marked unusable)
        """
        url = self.archive_url(volume)
        destination = self.download_dir / archive_filename(volume.uuid)

        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as response:
                with open(destination, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        f.write(chunk)
                response.raise_for_status()
        except requests.RequestException as e:
            self._mark_unusable(volume, destination)
            raise DownloadError(f"Error downloading {url}: {e}", url=url) from e

        logger.info(f"Successfully downloaded {url}")
        return destination

    def _mark_unusable(self, volume: VolumeManifest, destination: Path):
        """Keep the failed response as <uuid>.xml so no archive is found for it."""
        if destination.exists():
            error_file = self.download_dir / f"{volume.uuid}.xml"
            destination.replace(error_file)
            logger.debug(f"Moved failed download to {error_file.name}")

    def download_all(self, volumes: List[VolumeManifest]) -> Dict[str, Path]:
        """
        Download all archives concurrently and wait for every one to finish.

        Returns:
            Mapping uuid -> archive path for successful downloads
        """
        downloaded: Dict[str, Path] = {}
        failed = 0

        with tqdm(total=len(volumes), desc="Downloading archives", unit="volume") as pbar:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {
                    executor.submit(self.download_volume, volume): volume
                    for volume in volumes
                }

                for future in as_completed(futures):
                    volume = futures[future]
                    try:
                        downloaded[volume.uuid] = future.result()
                    except DownloadError as e:
                        failed += 1
                        logger.warning(str(e))
                    finally:
                        pbar.update(1)

        logger.info(f"Downloaded {len(downloaded)} archives, {failed} failed")
        return downloaded

"""
Artifact Fetching for the Installer

This module resolves the images and zips the installer needs to local files:
- Building the release catalog (which URL each artifact comes from)
- Downloading artifacts over HTTP with progress reporting
- Skipping the download when the artifact is already in the working directory

Artifacts (in fetch order):
- update:     Nethunter update zip, installed through TWRP
- recovery_a: OxygenOS recovery image, used to sideload the factory image
- recovery_b: TWRP image for the device codename
- factory:    OxygenOS factory (full OTA) zip

Downloads are written to ``<name>.part`` and renamed once complete, so a file
at the canonical name is always a finished transfer.
"""

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional
from urllib.parse import unquote, urlparse

import requests

from ...config import settings

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

CHUNK_SIZE = 64 * 1024

UPDATE = "update"
RECOVERY_A = "recovery_a"
RECOVERY_B = "recovery_b"
FACTORY = "factory"


class DownloadError(Exception):
    """An artifact could not be downloaded"""


@dataclass(frozen=True)
class ArtifactSpec:
    """Where an artifact comes from"""
    logical_name: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    description: str = ""


@dataclass
class Artifact:
    """An artifact resolved to a local file"""
    logical_name: str
    resolved_local_path: Path
    downloaded: bool = False


def twrp_url(codename: str) -> str:
    return (
        f"{settings.TWRP_ENDPOINT}/{codename}/"
        f"{settings.TWRP_VERSION_PREFIX}{codename}{settings.TWRP_EXTENSION}"
    )


def release_catalog(codename: str) -> List[ArtifactSpec]:
    """Artifacts for ``codename``, in the order they are fetched"""
    twrp = twrp_url(codename)
    return [
        ArtifactSpec(UPDATE, settings.NETHUNTER_URL, description="Nethunter update zip"),
        ArtifactSpec(RECOVERY_A, settings.OXYGEN_RECOVERY_URL, description="OxygenOS recovery"),
        # The TWRP mirror only serves the image when the Referer is set
        ArtifactSpec(RECOVERY_B, twrp, headers={"Referer": twrp}, description="TWRP recovery"),
        ArtifactSpec(FACTORY, settings.FACTORY_URL, description="OxygenOS factory image"),
    ]


def filename_from_url(url: str) -> str:
    name = os.path.basename(unquote(urlparse(url).path))
    if not name:
        raise DownloadError(f"Cannot derive a file name from URL: {url}")
    return name


class DownloadRequest:
    """A single pending HTTP download. Creating one does not touch the network."""

    def __init__(self, session: requests.Session, url: str,
                 headers: Optional[Dict[str, str]] = None, timeout: Optional[int] = None):
        self.session = session
        self.url = url
        self.headers = dict(headers or {})
        self.timeout = timeout or settings.DOWNLOAD_TIMEOUT_SEC
        self.filename = filename_from_url(url)

    def download(self, progress_callback: Optional[ProgressCallback] = None,
                 dest_dir: Optional[Path] = None) -> Path:
        """
        Download to ``dest_dir / filename``.

        Args:
            progress_callback: Called with a non-decreasing fraction in [0, 1]
            dest_dir: Target directory (defaults to the current directory)

        Returns:
            Path to the downloaded file

        Raises:
            DownloadError: On any HTTP or file system failure
        """
        dest_dir = Path(dest_dir) if dest_dir else Path.cwd()
        final_path = dest_dir / self.filename
        part_path = dest_dir / (self.filename + ".part")

        logger.info(f"Downloading {self.url} -> {final_path}")
        try:
            with self.session.get(self.url, headers=self.headers, stream=True,
                                  timeout=self.timeout) as response:
                response.raise_for_status()
                total = int(response.headers.get("Content-Length") or 0)

                downloaded = 0
                last_fraction = 0.0
                if progress_callback:
                    progress_callback(0.0)

                with open(part_path, "wb") as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if not chunk:
                            continue
                        f.write(chunk)
                        downloaded += len(chunk)

                        if progress_callback and total > 0:
                            fraction = min(downloaded / total, 1.0)
                            # The last report is always exactly 1.0
                            if last_fraction < fraction < 1.0:
                                last_fraction = fraction
                                progress_callback(fraction)

            if total and downloaded < total:
                raise DownloadError(
                    f"Download of {self.filename} incomplete: {downloaded}/{total} bytes"
                )

            os.replace(part_path, final_path)
        except requests.RequestException as e:
            raise DownloadError(f"Failed to download {self.url}: {e}") from e
        except OSError as e:
            raise DownloadError(f"Failed to write {final_path}: {e}") from e

        if progress_callback:
            progress_callback(1.0)

        logger.info(f"Downloaded {final_path} ({downloaded} bytes)")
        return final_path


class Downloader:
    """Download capability backed by a shared requests session"""

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": settings.USER_AGENT})

    def new_request(self, url: str, headers: Optional[Dict[str, str]] = None) -> DownloadRequest:
        return DownloadRequest(self.session, url, headers=headers)


class ArtifactFetcher:
    """
    Resolves artifacts to local files in the working directory.

    A file already present under the artifact's canonical name is reused
    without any network traffic, which makes re-running the installer after
    a failure cheap.
    """

    def __init__(self, downloader: Optional[Downloader] = None, work_dir: Optional[Path] = None):
        self.downloader = downloader or Downloader()
        self.work_dir = Path(work_dir) if work_dir else Path.cwd()
        self.artifacts: Dict[str, Artifact] = {}

    def fetch(self, spec: ArtifactSpec, on_progress: Optional[ProgressCallback] = None) -> Path:
        """
        Ensure ``spec`` is available locally. Downloads if missing.

        Returns:
            Path to the local file

        Raises:
            DownloadError: If the artifact is missing and the download failed
        """
        request = self.downloader.new_request(spec.url, headers=spec.headers)
        local_path = self.work_dir / request.filename

        if local_path.exists():
            logger.info(f"{spec.logical_name} already downloaded: {local_path}")
        else:
            local_path = request.download(on_progress, dest_dir=self.work_dir)

        self.artifacts[spec.logical_name] = Artifact(
            logical_name=spec.logical_name,
            resolved_local_path=local_path,
            downloaded=True,
        )
        return local_path


__all__ = [
    "ArtifactSpec",
    "Artifact",
    "ArtifactFetcher",
    "Downloader",
    "DownloadRequest",
    "DownloadError",
    "release_catalog",
    "twrp_url",
    "filename_from_url",
    "UPDATE",
    "RECOVERY_A",
    "RECOVERY_B",
    "FACTORY",
]

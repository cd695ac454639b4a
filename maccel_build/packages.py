"""
RPM Package Locator
===================

Finds pre-built maccel RPMs on the RPM builder repository's GitHub releases.
Releases are tagged per kernel and maccel version, e.g.
``kernel-6.11.5-300.fc41.x86_64-maccel-0.4.1``.
"""

import hashlib
import logging
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

import requests
from github import GithubException

from .errors import BuildTimeout, ChecksumMismatch, MaccelBuildError
from .models import ReleaseAsset, ReleaseInfo
from .services.github_service import GitHubService

logger = logging.getLogger(__name__)

CHECKSUMS_ASSET = "checksums.txt"
DEFAULT_ARCH = "x86_64"
REQUEST_TIMEOUT = 30
CHUNK_SIZE = 1024 * 1024


def release_tag(kernel_version: str, maccel_version: str) -> str:
    """Release tag the builder publishes for a kernel/maccel pair."""
    return f"kernel-{kernel_version}-maccel-{maccel_version}"


def package_filenames(maccel_version: str, fedora_version: str, arch: str = DEFAULT_ARCH) -> List[str]:
    """File names of the kmod and CLI packages, in that order."""
    return [
        f"kmod-maccel-{maccel_version}-1.fc{fedora_version}.{arch}.rpm",
        f"maccel-{maccel_version}-1.fc{fedora_version}.{arch}.rpm",
    ]


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def parse_checksums(text: str) -> Dict[str, str]:
    """Parse ``sha256sum`` output into a filename -> digest mapping."""
    checksums = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = line.split(None, 1)
        if len(parts) != 2:
            logger.warning(f"Ignoring malformed checksum line: {line}")
            continue
        digest, filename = parts
        checksums[filename.lstrip("*").strip()] = digest.lower()
    return checksums


def verify_checksums(checksums_file: Path, directory: Optional[Path] = None) -> List[str]:
    """
    Verify every file listed in *checksums_file*.

    Returns:
        Names of the verified files

    Raises:
        ChecksumMismatch: If a listed file is missing or its digest differs
    """
    checksums_file = Path(checksums_file)
    directory = Path(directory) if directory else checksums_file.parent
    verified = []

    for filename, expected in parse_checksums(checksums_file.read_text(encoding="utf-8")).items():
        path = directory / filename
        if not path.is_file():
            raise ChecksumMismatch(f"{filename}: listed in {checksums_file.name} but not present")
        actual = sha256_file(path)
        if actual != expected:
            raise ChecksumMismatch(f"{filename}: expected sha256 {expected}, got {actual}")
        logger.info(f"{filename}: OK")
        verified.append(filename)

    return verified


class PackageLocator:
    """Query and download maccel RPM releases from the builder repository."""

    def __init__(
        self,
        github: GitHubService,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.github = github
        self.session = session or requests.Session()
        self.clock = clock
        self.sleep = sleep

    def package_urls(self, tag: str, maccel_version: str, fedora_version: str) -> List[str]:
        base_url = f"https://github.com/{self.github.repo_name}/releases/download/{tag}"
        return [f"{base_url}/{name}" for name in package_filenames(maccel_version, fedora_version)]

    def release_exists(self, tag: str) -> bool:
        logger.info(f"Checking if release {tag} exists...")
        exists = self.github.release_exists(tag)
        logger.info(f"Release {tag} {'found' if exists else 'not found'}")
        return exists

    def list_kernel_releases(self, kernel_pattern: str) -> List[str]:
        """Release tags containing *kernel_pattern*."""
        return [tag for tag in self.github.list_release_tags() if kernel_pattern in tag]

    def release_info(self, tag: str) -> ReleaseInfo:
        release = self.github.get_release(tag)
        assets = [
            ReleaseAsset(name=asset.name, url=asset.browser_download_url, size=asset.size or 0)
            for asset in release.get_assets()
        ]
        return ReleaseInfo(tag=tag, created_at=release.created_at, assets=assets)

    def verify_urls(self, urls: List[str]) -> bool:
        """True only if every URL answers a HEAD request with 200."""
        for url in urls:
            try:
                response = self.session.head(url, allow_redirects=True, timeout=REQUEST_TIMEOUT)
            except requests.RequestException as e:
                logger.warning(f"Package URL not reachable: {url} ({e})")
                return False
            if response.status_code != 200:
                logger.warning(f"Package URL returned {response.status_code}: {url}")
                return False
        return True

    def wait_for_release(self, tag: str, timeout: float, interval: float) -> ReleaseInfo:
        """
        Poll until the builder publishes *tag*.

        Raises:
            BuildTimeout: If the release does not appear within *timeout* seconds
        """
        logger.info(f"Waiting up to {timeout:g}s for release {tag} (polling every {interval:g}s)")
        deadline = self.clock() + timeout
        polls = 0

        while True:
            polls += 1
            try:
                if self.github.release_exists(tag):
                    logger.info(f"Release {tag} available after {polls} poll(s)")
                    return self.release_info(tag)
            except (GithubException, requests.RequestException) as e:
                logger.warning(f"Error polling release {tag}: {e}")

            remaining = deadline - self.clock()
            if remaining <= 0:
                raise BuildTimeout(f"Release {tag} not published within {timeout:g}s ({polls} polls)")
            self.sleep(min(interval, remaining))

    def download_asset(self, asset: ReleaseAsset, output_dir: Path) -> Path:
        destination = Path(output_dir) / asset.name
        logger.info(f"Downloading {asset.name}...")
        with self.session.get(asset.url, stream=True, timeout=REQUEST_TIMEOUT) as response:
            response.raise_for_status()
            with open(destination, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    f.write(chunk)
        return destination

    def download_release(self, tag: str, output_dir: Path) -> List[Path]:
        """
        Download every RPM attached to *tag* into *output_dir*.

        The release's ``checksums.txt`` is verified when present.

        Raises:
            MaccelBuildError: If the release carries no RPM assets
            ChecksumMismatch: If a download does not match its checksum
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        info = self.release_info(tag)
        rpm_assets = [asset for asset in info.assets if asset.name.endswith(".rpm")]
        if not rpm_assets:
            raise MaccelBuildError(f"No RPM packages found in release {tag}")

        downloaded = [self.download_asset(asset, output_dir) for asset in rpm_assets]

        checksum_assets = [asset for asset in info.assets if asset.name == CHECKSUMS_ASSET]
        if checksum_assets:
            logger.info("Verifying checksums...")
            verify_checksums(self.download_asset(checksum_assets[0], output_dir))
        else:
            logger.warning(f"Release {tag} has no {CHECKSUMS_ASSET}, skipping verification")

        logger.info(f"Downloaded {len(downloaded)} package(s) to {output_dir}")
        return downloaded

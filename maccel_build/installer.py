"""
Maccel Integration
==================

Coordinates with the maccel RPM builder during an image build: detects the
kernel, asks the builder to produce packages for it, waits for the resulting
release and downloads the RPMs.
"""

import logging
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from github import GithubException

from .config import Settings, get_dispatch_token
from .config import settings as default_settings
from .errors import MaccelBuildError
from .packages import PackageLocator, release_tag
from .services.github_service import GitHubService

logger = logging.getLogger(__name__)

DISPATCH_EVENT = "build-for-kernel"
KERNEL_QUERY_FORMAT = "%{VERSION}-%{RELEASE}.%{ARCH}\n"
OS_RELEASE = Path("/etc/os-release")


def detect_kernel_version() -> str:
    """
    Version of the newest installed kernel package.

    Raises:
        MaccelBuildError: If rpm is unavailable or no kernel is installed
    """
    try:
        result = subprocess.run(
            ["rpm", "-q", "kernel", "--queryformat", KERNEL_QUERY_FORMAT],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise MaccelBuildError(f"Cannot query installed kernel: {e}") from e

    lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
    if result.returncode != 0 or not lines:
        raise MaccelBuildError(f"No installed kernel package found: {result.stderr.strip()}")

    kernel_version = lines[-1]
    logger.info(f"Detected kernel version: {kernel_version}")
    return kernel_version


def read_os_release(os_release: Path = OS_RELEASE) -> Dict[str, str]:
    """Parse os-release ``KEY=value`` lines; empty if the file is missing."""
    values = {}
    try:
        with open(os_release, "r") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, value = line.split("=", 1)
                values[key] = value.strip().strip('"')
    except FileNotFoundError:
        pass

    return values


def detect_fedora_version(os_release: Path = OS_RELEASE) -> Optional[str]:
    """
    Get the current Fedora version.

    Returns:
        Version string (e.g., "43", "42") or None if not Fedora
    """
    return read_os_release(os_release).get("VERSION_ID")


def trigger_build(
    github: Optional[GitHubService],
    kernel_version: str,
    trigger_repo: str,
) -> bool:
    """
    Ask the RPM builder to build packages for *kernel_version*.

    Returns:
        True if the dispatch was sent; failures are logged, never raised
    """
    if github is None:
        logger.warning("DISPATCH_TOKEN not set, skipping repository dispatch")
        return False

    logger.info(f"Triggering maccel RPM build for kernel {kernel_version}...")
    try:
        github.create_dispatch(
            DISPATCH_EVENT,
            {"kernel_version": kernel_version, "trigger_repo": trigger_repo},
        )
    except GithubException as e:
        logger.warning(f"Failed to trigger maccel build, continuing without it: {e}")
        return False

    logger.info("Repository dispatch sent successfully")
    return True


class MaccelIntegration:
    """Fetch RPMs for the image's kernel, building them remotely if needed."""

    def __init__(
        self,
        locator: PackageLocator,
        dispatcher: Optional[GitHubService],
        settings: Settings,
    ):
        self.locator = locator
        self.dispatcher = dispatcher
        self.settings = settings

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "MaccelIntegration":
        settings = settings or default_settings
        token = get_dispatch_token(settings)
        reader = GitHubService(settings.RPM_BUILDER_REPO, token=token or settings.GITHUB_TOKEN)
        dispatcher = GitHubService(settings.RPM_BUILDER_REPO, token=token) if token else None
        return cls(PackageLocator(reader), dispatcher, settings)

    def integrate(self, maccel_version: str, kernel_version: Optional[str] = None) -> List[Path]:
        """
        Make maccel RPMs for the kernel available locally.

        Raises:
            BuildTimeout: If the triggered build never publishes a release
            MaccelBuildError: On kernel detection or download failures
        """
        kernel_version = kernel_version or detect_kernel_version()
        tag = release_tag(kernel_version, maccel_version)

        if self.locator.release_exists(tag):
            logger.info(f"Using pre-built packages from release {tag}")
        else:
            logger.info("No cached RPMs found, requesting a build...")
            if not trigger_build(self.dispatcher, kernel_version, self.settings.TRIGGER_REPO):
                raise MaccelBuildError(f"Release {tag} does not exist and no build could be triggered")
            self.locator.wait_for_release(
                tag,
                timeout=self.settings.BUILD_WAIT_TIMEOUT,
                interval=self.settings.BUILD_POLL_INTERVAL,
            )

        return self.locator.download_release(tag, self.settings.PACKAGE_OUTPUT_DIR)

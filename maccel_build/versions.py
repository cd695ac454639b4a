"""
Version Resolution
==================

Resolves the maccel version to build: either a pinned version confirmed to
exist upstream, or the latest upstream release.
"""

import logging
import re
from typing import Optional

from .errors import UpstreamUnreachable, VersionNotFound
from .retry import RetryExhausted, RetryPolicy
from .services.github_service import GitHubService

logger = logging.getLogger(__name__)

TAG_PREFIX = "v"
VERSION_PATTERN = re.compile(r"^\d+(\.\d+)*([.+~-][0-9A-Za-z.]+)?$")


def normalize_version(version: str) -> str:
    """Strip whitespace and a leading ``v`` tag marker."""
    version = version.strip()
    if version.startswith(TAG_PREFIX):
        version = version[len(TAG_PREFIX):]
    return version


def is_valid_version(version: str) -> bool:
    return bool(VERSION_PATTERN.match(version))


def version_tag(version: str) -> str:
    """Upstream git tag for a (normalized) version."""
    return f"{TAG_PREFIX}{version}"


class VersionResolver:
    """Resolve pinned or latest maccel versions against the upstream repository."""

    def __init__(self, github: GitHubService, retry: RetryPolicy):
        self.github = github
        self.retry = retry

    def resolve(self, pinned: Optional[str] = None) -> str:
        """
        Resolve the version to build.

        Args:
            pinned: Explicit version (with or without ``v`` prefix); latest if empty

        Returns:
            Normalized version string, e.g. "0.4.1"

        Raises:
            VersionNotFound: Pinned version is malformed or has no release
            UpstreamUnreachable: Latest release could not be queried
        """
        if pinned and pinned.strip():
            version = normalize_version(pinned)
            logger.info(f"Using pinned version: {version}")
            self.validate_exists(version)
            return version

        logger.info("No version pinned, resolving to latest...")
        version = self.latest()
        logger.info(f"Resolved to latest version: {version}")
        return version

    def latest(self) -> str:
        logger.info(f"Fetching latest maccel version from {self.github.repo_name}...")
        try:
            tag = self.retry.call(
                self.github.get_latest_release_tag,
                "fetch latest version",
                accept=bool,
            )
        except RetryExhausted as e:
            logger.error("Check network connectivity or GitHub status")
            raise UpstreamUnreachable(
                f"Cannot reach GitHub API after {e.attempts} attempts"
            ) from e

        version = normalize_version(tag)
        if not is_valid_version(version):
            raise VersionNotFound(f"Latest release tag '{tag}' is not a valid version")
        return version

    def validate_exists(self, version: str) -> None:
        if not is_valid_version(version):
            raise VersionNotFound(f"Maccel version '{version}' is not a valid version string")

        logger.info(f"Validating maccel version {version} exists...")
        tag = version_tag(version)
        try:
            self.retry.call(
                lambda: self.github.release_exists(tag),
                "validate version",
                accept=bool,
            )
        except RetryExhausted as e:
            raise VersionNotFound(
                f"Maccel version '{version}' does not exist. Check available versions at: "
                f"https://github.com/{self.github.repo_name}/releases"
            ) from e

        logger.info(f"Version {version} validated successfully")

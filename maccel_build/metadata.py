"""
Release Metadata
================

Fetches the license, changelog, source archive URL and commit hash for a
resolved maccel version. Only the license is required; the rest degrades to
defaults.
"""

import logging

from github import GithubException
from requests import RequestException

from .errors import MetadataUnavailable
from .models import DEFAULT_COMMIT, ReleaseMetadata
from .retry import RetryExhausted, RetryPolicy
from .services.github_service import GitHubService
from .versions import version_tag

logger = logging.getLogger(__name__)


def default_changelog(version: str) -> str:
    return f"Update to maccel {version}"


def source_url(repo_name: str, version: str) -> str:
    """Download URL of the upstream source tarball for *version*."""
    return f"https://github.com/{repo_name}/archive/refs/tags/{version_tag(version)}.tar.gz"


class MetadataFetcher:
    """Collect upstream metadata needed to render the spec templates."""

    def __init__(self, github: GitHubService, retry: RetryPolicy):
        self.github = github
        self.retry = retry

    def fetch(self, version: str) -> ReleaseMetadata:
        """
        Fetch all metadata for *version*.

        Raises:
            MetadataUnavailable: If the license cannot be determined
        """
        logger.info(f"Fetching metadata for version {version}...")
        metadata = ReleaseMetadata(
            version=version,
            license=self.fetch_license(),
            source_url=self.source_url(version),
            changelog_body=self.fetch_changelog(version),
            upstream_commit=self.fetch_upstream_commit(version),
        )

        logger.info("Metadata fetched:")
        logger.info(f"  License: {metadata.license}")
        logger.info(f"  Source URL: {metadata.source_url}")
        logger.info(f"  Upstream commit: {metadata.upstream_commit}")
        return metadata

    def fetch_license(self) -> str:
        logger.info("Fetching license information...")
        try:
            return self.retry.call(self.github.get_license_spdx, "fetch license", accept=bool)
        except RetryExhausted as e:
            raise MetadataUnavailable(
                f"Cannot fetch license information after {e.attempts} attempts"
            ) from e

    def fetch_changelog(self, version: str) -> str:
        logger.info("Fetching changelog entries...")
        tag = version_tag(version)
        try:
            return self.retry.call(
                lambda: self.github.get_release_body(tag),
                "fetch changelog",
                accept=lambda body: bool(body and body.strip()),
            )
        except RetryExhausted as e:
            logger.warning(f"Cannot fetch changelog after {e.attempts} attempts, using default")
            return default_changelog(version)

    def source_url(self, version: str) -> str:
        return source_url(self.github.repo_name, version)

    def fetch_upstream_commit(self, version: str) -> str:
        """Commit behind the release tag; ``unknown`` when it cannot be looked up."""
        try:
            return self.github.get_tag_commit(version_tag(version)) or DEFAULT_COMMIT
        except (GithubException, RequestException, AttributeError) as e:
            logger.warning(f"Could not resolve upstream commit for {version}: {e}")
            return DEFAULT_COMMIT

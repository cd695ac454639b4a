"""
GitHub Service
==============

Service for interacting with the GitHub API: upstream maccel releases and the
RPM builder repository's releases and dispatch events.
"""

from typing import Any, Dict, List, Optional

from github import Auth, Github, GithubException, UnknownObjectException


class GitHubService:
    """Service for GitHub API operations on a single repository."""

    def __init__(self, repo_name: str, token: Optional[str] = None, client: Optional[Github] = None):
        """
        Initialize GitHub service.

        Args:
            repo_name: Repository name in format "owner/repo"
            token: GitHub personal access token (anonymous access if empty)
            client: Pre-built PyGithub client, mainly for tests
        """
        if client is None:
            client = Github(auth=Auth.Token(token)) if token else Github()
        self.github = client
        self.repo_name = repo_name
        self._repo = None

    def get_repo(self):
        """Get repository object."""
        if not self._repo:
            self._repo = self.github.get_repo(self.repo_name)
        return self._repo

    def get_latest_release_tag(self) -> str:
        """Tag name of the latest published release."""
        return self.get_repo().get_latest_release().tag_name

    def get_release(self, tag: str):
        """
        Get a release by tag.

        Raises:
            UnknownObjectException: If no release carries the tag
        """
        return self.get_repo().get_release(tag)

    def release_exists(self, tag: str) -> bool:
        """
        Check whether a release exists for *tag*.

        Only a 404 answers "no"; any other API failure propagates so callers
        can retry it.
        """
        try:
            self.get_release(tag)
        except UnknownObjectException:
            return False
        return True

    def get_release_body(self, tag: str) -> str:
        """Release notes for *tag* (empty string when the release has none)."""
        return self.get_release(tag).body or ""

    def get_license_spdx(self) -> Optional[str]:
        """SPDX identifier of the repository license, or None if not detected."""
        try:
            content = self.get_repo().get_license()
        except UnknownObjectException:
            return None
        license_info = getattr(content, "license", None)
        spdx_id = getattr(license_info, "spdx_id", None)
        if not spdx_id or spdx_id == "null":
            return None
        return spdx_id

    def get_tag_commit(self, tag: str) -> str:
        """Commit SHA the git tag points at."""
        return self.get_repo().get_git_ref(f"tags/{tag}").object.sha

    def list_release_tags(self) -> List[str]:
        """Tag names of every release, newest first."""
        return [release.tag_name for release in self.get_repo().get_releases()]

    def create_dispatch(self, event_type: str, client_payload: Optional[Dict[str, Any]] = None) -> bool:
        """
        Send a repository_dispatch event.

        Raises:
            GithubException: If the dispatch is rejected
        """
        success = self.get_repo().create_repository_dispatch(event_type, client_payload or {})
        if not success:
            raise GithubException(
                status=500,
                data={"message": "Failed to create repository dispatch"}
            )
        return success

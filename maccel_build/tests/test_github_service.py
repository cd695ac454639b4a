"""
Tests for the GitHub Service
============================

The PyGithub client is mocked; no network access is made.
"""

from unittest.mock import MagicMock

import pytest
from github import GithubException, UnknownObjectException

from maccel_build.services.github_service import GitHubService


@pytest.fixture
def repo():
    return MagicMock()


@pytest.fixture
def service(repo):
    client = MagicMock()
    client.get_repo.return_value = repo
    return GitHubService("Gnarus-G/maccel", client=client)


@pytest.mark.unit
class TestGitHubService:
    def test_repo_fetched_once(self, service):
        service.get_repo()
        service.get_repo()

        service.github.get_repo.assert_called_once_with("Gnarus-G/maccel")

    def test_latest_release_tag(self, service, repo):
        repo.get_latest_release.return_value.tag_name = "v0.4.1"
        assert service.get_latest_release_tag() == "v0.4.1"

    def test_release_exists(self, service, repo):
        assert service.release_exists("v0.4.1") is True
        repo.get_release.assert_called_once_with("v0.4.1")

    def test_release_missing(self, service, repo):
        repo.get_release.side_effect = UnknownObjectException(404, {"message": "Not Found"}, {})
        assert service.release_exists("v9.9.9") is False

    def test_release_lookup_errors_propagate(self, service, repo):
        repo.get_release.side_effect = GithubException(502, {"message": "Bad Gateway"}, {})

        with pytest.raises(GithubException):
            service.release_exists("v0.4.1")

    def test_release_body_defaults_to_empty(self, service, repo):
        repo.get_release.return_value.body = None
        assert service.get_release_body("v0.4.1") == ""

    def test_license_spdx(self, service, repo):
        repo.get_license.return_value.license.spdx_id = "GPL-2.0"
        assert service.get_license_spdx() == "GPL-2.0"

    @pytest.mark.parametrize("spdx_id", [None, "", "null"])
    def test_license_undetected(self, service, repo, spdx_id):
        repo.get_license.return_value.license.spdx_id = spdx_id
        assert service.get_license_spdx() is None

    def test_license_file_absent(self, service, repo):
        repo.get_license.side_effect = UnknownObjectException(404, {"message": "Not Found"}, {})
        assert service.get_license_spdx() is None

    def test_tag_commit(self, service, repo):
        repo.get_git_ref.return_value.object.sha = "abc123"

        assert service.get_tag_commit("v0.4.1") == "abc123"
        repo.get_git_ref.assert_called_once_with("tags/v0.4.1")

    def test_list_release_tags(self, service, repo):
        releases = [MagicMock(tag_name="b"), MagicMock(tag_name="a")]
        repo.get_releases.return_value = releases
        assert service.list_release_tags() == ["b", "a"]

    def test_create_dispatch(self, service, repo):
        repo.create_repository_dispatch.return_value = True

        assert service.create_dispatch("build-for-kernel", {"kernel_version": "6.11"}) is True
        repo.create_repository_dispatch.assert_called_once_with(
            "build-for-kernel", {"kernel_version": "6.11"}
        )

    def test_create_dispatch_rejected(self, service, repo):
        repo.create_repository_dispatch.return_value = False

        with pytest.raises(GithubException):
            service.create_dispatch("build-for-kernel")

"""
Pytest Configuration and Fixtures
==================================

Shared fixtures for the maccel build tooling tests.
"""

from datetime import date
from pathlib import Path
from typing import List
from unittest.mock import MagicMock

import pytest

from maccel_build.cache import SpecCache
from maccel_build.retry import RetryPolicy
from maccel_build.services.github_service import GitHubService
from maccel_build.templates import AKMOD_TEMPLATE, MACCEL_TEMPLATE

UPSTREAM_REPO = "Gnarus-G/maccel"
BUILDER_REPO = "abirkel/maccel-rpm-builder"
FIXED_DAY = date(2025, 1, 7)

AKMOD_TEMPLATE_TEXT = """\
Name:           maccel-kmod
Version:        {{MACCEL_VERSION}}
License:        {{LICENSE}}
Source0:        {{SOURCE_URL}}

%changelog
{{CHANGELOG}}
"""

MACCEL_TEMPLATE_TEXT = """\
Name:           maccel
Version:        {{MACCEL_VERSION}}
License:        {{LICENSE}}
Source0:        {{SOURCE_URL}}

%changelog
{{CHANGELOG}}
"""


def write_stub_command(bin_dir: Path, name: str, output: str = "", exit_code: int = 0) -> Path:
    """
    Create an executable stub that prints *output* and exits with *exit_code*.

    Only shell builtins are used, so the stub works with PATH narrowed to *bin_dir*.
    """
    bin_dir.mkdir(parents=True, exist_ok=True)
    stub_path = bin_dir / name
    lines = []
    for line in output.splitlines():
        quoted = line.replace("'", "'\\''")
        lines.append(f"printf '%s\\n' '{quoted}'\n")
    stub_path.write_text("#!/bin/sh\n" + "".join(lines) + f"exit {exit_code}\n")
    stub_path.chmod(0o755)
    return stub_path


@pytest.fixture
def sleeps() -> List[float]:
    """Records every delay passed to the retry policy instead of sleeping."""
    return []


@pytest.fixture
def retry(sleeps: List[float]) -> RetryPolicy:
    return RetryPolicy(attempts=3, base_delay=5, sleep=sleeps.append)


@pytest.fixture
def upstream() -> MagicMock:
    """GitHubService double for the upstream maccel repository."""
    github = MagicMock(spec=GitHubService)
    github.repo_name = UPSTREAM_REPO
    github.get_latest_release_tag.return_value = "v0.4.1"
    github.release_exists.return_value = True
    github.get_license_spdx.return_value = "GPL-2.0"
    github.get_release_body.return_value = "- Fix scroll wheel handling\n- Add sensitivity cap"
    github.get_tag_commit.return_value = "3f2a9c1d0e8b7a6f5e4d3c2b1a0f9e8d7c6b5a49"
    return github


@pytest.fixture
def builder() -> MagicMock:
    """GitHubService double for the RPM builder repository."""
    github = MagicMock(spec=GitHubService)
    github.repo_name = BUILDER_REPO
    return github


@pytest.fixture
def templates_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "templates"
    directory.mkdir()
    (directory / AKMOD_TEMPLATE).write_text(AKMOD_TEMPLATE_TEXT)
    (directory / MACCEL_TEMPLATE).write_text(MACCEL_TEMPLATE_TEXT)
    return directory


@pytest.fixture
def cache(tmp_path: Path) -> SpecCache:
    return SpecCache(tmp_path / "specs")


@pytest.fixture
def no_lint(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """PATH containing no lint tool."""
    empty_bin = tmp_path / "empty-bin"
    empty_bin.mkdir()
    monkeypatch.setenv("PATH", str(empty_bin))
    return empty_bin


@pytest.fixture
def lint_bin(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """PATH directory where tests can drop a stub rpmlint."""
    bin_dir = tmp_path / "lint-bin"
    bin_dir.mkdir()
    monkeypatch.setenv("PATH", str(bin_dir))
    return bin_dir

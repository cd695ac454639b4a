"""
Build Configuration
===================

Centralized configuration management using Pydantic Settings.
Supports environment variables and .env files.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

# Load variables from a local .env so they are available to both Pydantic settings
# and any os.getenv fallbacks (e.g., GitHub token reads in CLI utilities).
load_dotenv()

PACKAGE_ROOT = Path(__file__).parent


class Settings(BaseSettings):
    """Build tooling settings with environment variable support."""

    # Spec generation
    MACCEL_VERSION: str = ""
    FORCE_REGENERATE: bool = False

    # GitHub Settings
    GITHUB_TOKEN: str = ""
    DISPATCH_TOKEN: str = ""
    UPSTREAM_REPO: str = "Gnarus-G/maccel"
    RPM_BUILDER_REPO: str = "abirkel/maccel-rpm-builder"
    TRIGGER_REPO: str = "MyAuroraBluebuild"

    # Paths
    TEMPLATES_DIR: Path = PACKAGE_ROOT / "spec_templates"
    SPECS_CACHE_DIR: Path = Path("specs")
    PACKAGE_OUTPUT_DIR: Path = Path("/tmp/maccel-rpms")

    # Retry policy
    RETRY_MAX: int = 3
    RETRY_DELAY: float = 5  # seconds, doubled after each failed attempt

    # Spec validation
    LINT_COMMAND: str = "rpmlint"
    REQUIRE_LINT: bool = False

    # Remote build polling
    BUILD_WAIT_TIMEOUT: float = 1800  # seconds
    BUILD_POLL_INTERVAL: float = 30  # seconds

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


settings = Settings()


def get_github_token(override_settings: Optional[BaseSettings] | None = None) -> str:
    """Return the configured GitHub token from provided settings or environment variables."""

    token_source = override_settings or settings
    return getattr(token_source, "GITHUB_TOKEN", "") or os.getenv("GITHUB_TOKEN", "")


def get_dispatch_token(override_settings: Optional[BaseSettings] | None = None) -> str:
    """Return the token used for repository dispatch, if any."""

    token_source = override_settings or settings
    return getattr(token_source, "DISPATCH_TOKEN", "") or os.getenv("DISPATCH_TOKEN", "")

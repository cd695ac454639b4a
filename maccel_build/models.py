"""
Pydantic Models
===============

Data records shared by the spec generator and the package tooling.
"""

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from . import __version__

DEFAULT_COMMIT = "unknown"


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """Format *moment* (default: now) as UTC ISO-8601 with a ``Z`` suffix."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class GeneratorState(str, Enum):
    """Spec generator state machine."""
    IDLE = "idle"
    RESOLVING_VERSION = "resolving_version"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    FETCHING_METADATA = "fetching_metadata"
    RENDERING = "rendering"
    VALIDATING = "validating"
    CACHING = "caching"
    DONE = "done"
    FAILED = "failed"


class ValidationStatus(str, Enum):
    """Outcome of linting one spec file."""
    PASSED = "passed"
    WARNINGS = "warnings"
    SKIPPED = "skipped"


class ReleaseMetadata(BaseModel):
    """Upstream metadata for one maccel release."""
    version: str
    license: str
    source_url: str
    changelog_body: str
    upstream_commit: str = DEFAULT_COMMIT


class CacheMetadata(BaseModel):
    """Contents of ``metadata.json`` inside a cache entry."""
    maccel_version: str
    generated_at: str = Field(default_factory=utc_timestamp)
    source_url: str
    license: str
    generator_version: str = __version__
    upstream_commit: str = DEFAULT_COMMIT
    changelog_entries: int = 1


class CacheEntry(BaseModel):
    """Paths making up a complete cache entry."""
    version: str
    directory: Path
    akmod_spec: Path
    maccel_spec: Path
    metadata_file: Path


class ValidationResult(BaseModel):
    """Result of running the lint tool against a spec file."""
    path: Path
    status: ValidationStatus
    output: str = ""


class GenerationResult(BaseModel):
    """Outcome of one spec generator invocation."""
    version: str
    from_cache: bool = False
    dry_run: bool = False
    akmod_spec_path: Optional[Path] = None
    maccel_spec_path: Optional[Path] = None
    validations: List[ValidationResult] = Field(default_factory=list)

    def export_lines(self) -> List[str]:
        """Shell ``export`` statements for the calling build pipeline."""
        if self.akmod_spec_path is None or self.maccel_spec_path is None:
            return []
        return [
            f"export AKMOD_SPEC_PATH='{self.akmod_spec_path}'",
            f"export MACCEL_SPEC_PATH='{self.maccel_spec_path}'",
        ]


class ReleaseAsset(BaseModel):
    """A downloadable file attached to a GitHub release."""
    name: str
    url: str
    size: int = 0


class ReleaseInfo(BaseModel):
    """Summary of a release on the RPM builder repository."""
    tag: str
    created_at: Optional[datetime] = None
    assets: List[ReleaseAsset] = Field(default_factory=list)

"""
Spec Cache
==========

Version-keyed cache of generated spec files::

    <cache_dir>/maccel-<version>/
        akmod-maccel.spec
        maccel.spec
        metadata.json

An entry counts only when all three files exist. Entries are published by
renaming a fully populated staging directory into place while holding a
per-version advisory lock, so readers never observe a partial entry.
"""

import fcntl
import logging
import os
import shutil
import tempfile
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List

from .errors import CacheWriteFailed
from .models import CacheEntry, CacheMetadata

logger = logging.getLogger(__name__)

AKMOD_SPEC = "akmod-maccel.spec"
MACCEL_SPEC = "maccel.spec"
METADATA_FILE = "metadata.json"
REQUIRED_FILES = (AKMOD_SPEC, MACCEL_SPEC, METADATA_FILE)

ENTRY_PREFIX = "maccel-"


class SpecCache:
    """Filesystem cache of generated spec files keyed by maccel version."""

    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)

    def entry_dir(self, version: str) -> Path:
        return self.cache_dir / f"{ENTRY_PREFIX}{version}"

    def entry(self, version: str) -> CacheEntry:
        directory = self.entry_dir(version)
        return CacheEntry(
            version=version,
            directory=directory,
            akmod_spec=directory / AKMOD_SPEC,
            maccel_spec=directory / MACCEL_SPEC,
            metadata_file=directory / METADATA_FILE,
        )

    def check(self, version: str) -> bool:
        """True only if the entry directory and all required files exist."""
        directory = self.entry_dir(version)
        if not directory.is_dir() or not all((directory / name).is_file() for name in REQUIRED_FILES):
            logger.info(f"Cache incomplete or missing for version {version}")
            return False

        logger.info(f"Found complete cached specs for version {version}")
        return True

    def load_metadata(self, version: str) -> CacheMetadata:
        path = self.entry_dir(version) / METADATA_FILE
        return CacheMetadata.model_validate_json(path.read_text(encoding="utf-8"))

    def list_versions(self) -> List[str]:
        """Versions with a complete cache entry, sorted by name."""
        if not self.cache_dir.is_dir():
            return []
        versions = []
        for path in sorted(self.cache_dir.iterdir()):
            if path.is_dir() and path.name.startswith(ENTRY_PREFIX):
                version = path.name[len(ENTRY_PREFIX):]
                if all((path / name).is_file() for name in REQUIRED_FILES):
                    versions.append(version)
        return versions

    @contextmanager
    def staging(self, version: str) -> Iterator[Path]:
        """
        Yield an empty staging directory inside the cache root.

        The directory lives on the same filesystem as the entries so that
        ``commit`` can publish it with a rename. Whatever is left of it is
        removed on exit.
        """
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            staging_dir = Path(tempfile.mkdtemp(prefix=f".staging-{ENTRY_PREFIX}{version}-", dir=self.cache_dir))
        except OSError as e:
            raise CacheWriteFailed(f"Cannot create staging directory in {self.cache_dir}: {e}") from e

        logger.info(f"Using temporary directory: {staging_dir}")
        try:
            yield staging_dir
        finally:
            shutil.rmtree(staging_dir, ignore_errors=True)

    @contextmanager
    def lock(self, version: str) -> Iterator[None]:
        """Exclusive advisory lock serializing writers of one version."""
        lock_path = self.cache_dir / f".{ENTRY_PREFIX}{version}.lock"
        with open(lock_path, "w") as handle:
            fcntl.flock(handle, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle, fcntl.LOCK_UN)

    def commit(
        self,
        version: str,
        staging_dir: Path,
        metadata: CacheMetadata,
        replace: bool = False,
    ) -> CacheEntry:
        """
        Publish a staged pair of spec files as the cache entry for *version*.

        Args:
            version: Cache key
            staging_dir: Directory from ``staging()`` holding both spec files
            metadata: Record written as ``metadata.json``
            replace: Replace a complete existing entry (forced regeneration)

        Raises:
            CacheWriteFailed: If the entry cannot be written
        """
        staging_dir = Path(staging_dir)
        target = self.entry_dir(version)
        logger.info(f"Caching spec files to: {target}")

        for name in (AKMOD_SPEC, MACCEL_SPEC):
            if not (staging_dir / name).is_file():
                raise CacheWriteFailed(f"Staged spec file missing: {staging_dir / name}")

        try:
            (staging_dir / METADATA_FILE).write_text(
                metadata.model_dump_json(indent=2) + "\n", encoding="utf-8"
            )
            with self.lock(version):
                if target.exists():
                    if not replace and self.check(version):
                        logger.info(f"Entry for {version} was cached concurrently, keeping it")
                        return self.entry(version)
                    retired = target.with_name(f".retired-{target.name}-{uuid.uuid4().hex}")
                    os.rename(target, retired)
                    os.rename(staging_dir, target)
                    shutil.rmtree(retired, ignore_errors=True)
                else:
                    os.rename(staging_dir, target)
        except OSError as e:
            raise CacheWriteFailed(f"Cannot write cache entry {target}: {e}") from e

        logger.info("Spec files cached successfully")
        logger.info("Cache contents:")
        for name in REQUIRED_FILES:
            logger.info(f"  - {name}")
        return self.entry(version)

"""
Spec Generator
==============

Drives one spec generation run:

    idle -> resolving_version -> cache_hit -> done
                              -> cache_miss -> fetching_metadata -> rendering
                                 -> validating -> caching -> done

Any error moves the generator to ``failed`` and propagates. Rendering and
validation happen in a staging directory, so a failed run never leaves a
cache entry behind. Dry runs stage in a temporary directory outside the cache
and never touch it.
"""

import logging
import tempfile
import time
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Callable, Iterator, Optional

from .cache import AKMOD_SPEC, MACCEL_SPEC, SpecCache
from .config import Settings, get_github_token
from .config import settings as default_settings
from .errors import MaccelBuildError
from .metadata import MetadataFetcher
from .models import CacheMetadata, GenerationResult, GeneratorState
from .retry import RetryPolicy
from .services.github_service import GitHubService
from .templates import (
    AKMOD_TEMPLATE,
    MACCEL_TEMPLATE,
    TemplateRenderer,
    count_changelog_entries,
    format_changelog,
)
from .validator import SpecValidator
from .versions import VersionResolver

logger = logging.getLogger(__name__)


class SpecGenerator:
    """Generate, validate and cache the maccel RPM spec files."""

    def __init__(
        self,
        resolver: VersionResolver,
        fetcher: MetadataFetcher,
        renderer: TemplateRenderer,
        validator: SpecValidator,
        cache: SpecCache,
        today: Callable[[], date] = date.today,
    ):
        self.resolver = resolver
        self.fetcher = fetcher
        self.renderer = renderer
        self.validator = validator
        self.cache = cache
        self.today = today
        self.state = GeneratorState.IDLE

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "SpecGenerator":
        settings = settings or default_settings
        github = GitHubService(settings.UPSTREAM_REPO, token=get_github_token(settings))
        retry = RetryPolicy.from_settings(settings, sleep=sleep)
        return cls(
            resolver=VersionResolver(github, retry),
            fetcher=MetadataFetcher(github, retry),
            renderer=TemplateRenderer(settings.TEMPLATES_DIR),
            validator=SpecValidator(settings.LINT_COMMAND, require_lint=settings.REQUIRE_LINT),
            cache=SpecCache(settings.SPECS_CACHE_DIR),
        )

    def _transition(self, state: GeneratorState) -> None:
        logger.debug(f"Generator state: {self.state.value} -> {state.value}")
        self.state = state

    def generate(
        self,
        version: Optional[str] = None,
        force: bool = False,
        dry_run: bool = False,
    ) -> GenerationResult:
        """
        Produce spec files for *version* (latest if None).

        Args:
            version: Pinned maccel version, with or without ``v`` prefix
            force: Regenerate even when a complete cache entry exists
            dry_run: Resolve, render and lint, but do not write the cache

        Raises:
            MaccelBuildError: Any fatal resolution, fetch, render, lint or cache error
            OSError: Unexpected filesystem or subprocess failure, after moving to ``failed``
        """
        logger.info("Starting maccel spec file generator...")
        self.state = GeneratorState.IDLE
        try:
            return self._generate(version, force, dry_run)
        except (MaccelBuildError, OSError, UnicodeError):
            self._transition(GeneratorState.FAILED)
            raise

    @contextmanager
    def _scratch_dir(self, version: str) -> Iterator[Path]:
        """Throwaway directory outside the cache for dry runs."""
        with tempfile.TemporaryDirectory(prefix=f"maccel-{version}-dry-run-") as directory:
            yield Path(directory)

    def _generate(self, version: Optional[str], force: bool, dry_run: bool) -> GenerationResult:
        self._transition(GeneratorState.RESOLVING_VERSION)
        resolved = self.resolver.resolve(version)

        if force:
            logger.info("Force regeneration enabled, skipping cache")
        elif self.cache.check(resolved):
            self._transition(GeneratorState.CACHE_HIT)
            entry = self.cache.entry(resolved)
            logger.info("Using cached spec files:")
            logger.info(f"  AKMOD_SPEC_PATH={entry.akmod_spec}")
            logger.info(f"  MACCEL_SPEC_PATH={entry.maccel_spec}")
            self._transition(GeneratorState.DONE)
            return GenerationResult(
                version=resolved,
                from_cache=True,
                dry_run=dry_run,
                akmod_spec_path=entry.akmod_spec,
                maccel_spec_path=entry.maccel_spec,
            )

        self._transition(GeneratorState.CACHE_MISS)
        self._transition(GeneratorState.FETCHING_METADATA)
        metadata = self.fetcher.fetch(resolved)

        self._transition(GeneratorState.RENDERING)
        logger.info("Generating spec files...")
        changelog = format_changelog(resolved, metadata.changelog_body, today=self.today())
        values = {
            "MACCEL_VERSION": resolved,
            "LICENSE": metadata.license,
            "SOURCE_URL": metadata.source_url,
            "CHANGELOG": changelog,
        }

        staging = self._scratch_dir(resolved) if dry_run else self.cache.staging(resolved)
        with staging as staging_dir:
            akmod_spec = self.renderer.render_to(AKMOD_TEMPLATE, staging_dir / AKMOD_SPEC, values)
            maccel_spec = self.renderer.render_to(MACCEL_TEMPLATE, staging_dir / MACCEL_SPEC, values)

            self._transition(GeneratorState.VALIDATING)
            validations = self.validator.validate_all([akmod_spec, maccel_spec])

            if dry_run:
                logger.info("Dry run mode: validation complete, nothing cached")
                self._transition(GeneratorState.DONE)
                return GenerationResult(version=resolved, dry_run=True, validations=validations)

            self._transition(GeneratorState.CACHING)
            entry = self.cache.commit(
                resolved,
                staging_dir,
                CacheMetadata(
                    maccel_version=resolved,
                    source_url=metadata.source_url,
                    license=metadata.license,
                    upstream_commit=metadata.upstream_commit,
                    changelog_entries=count_changelog_entries(changelog),
                ),
                replace=force,
            )

        logger.info("Spec files ready:")
        logger.info(f"  AKMOD_SPEC_PATH={entry.akmod_spec}")
        logger.info(f"  MACCEL_SPEC_PATH={entry.maccel_spec}")
        self._transition(GeneratorState.DONE)
        return GenerationResult(
            version=resolved,
            akmod_spec_path=entry.akmod_spec,
            maccel_spec_path=entry.maccel_spec,
            validations=[
                validation.model_copy(update={"path": entry.directory / validation.path.name})
                for validation in validations
            ],
        )

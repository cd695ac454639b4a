"""
Tests for the Spec Cache
========================
"""

import json
import re
import threading

import pytest

from maccel_build.cache import AKMOD_SPEC, MACCEL_SPEC, METADATA_FILE, REQUIRED_FILES
from maccel_build.errors import CacheWriteFailed
from maccel_build.models import CacheMetadata


def _metadata(version="0.4.1", **overrides):
    fields = dict(
        maccel_version=version,
        source_url=f"https://github.com/Gnarus-G/maccel/archive/refs/tags/v{version}.tar.gz",
        license="GPL-2.0",
        upstream_commit="abc123",
    )
    fields.update(overrides)
    return CacheMetadata(**fields)


def _stage(staging_dir, marker="first"):
    (staging_dir / AKMOD_SPEC).write_text(f"akmod {marker}\n")
    (staging_dir / MACCEL_SPEC).write_text(f"maccel {marker}\n")


@pytest.mark.unit
class TestCacheCheck:
    def test_miss_when_absent(self, cache):
        assert cache.check("0.4.1") is False

    def test_hit_after_commit(self, cache):
        with cache.staging("0.4.1") as staging_dir:
            _stage(staging_dir)
            cache.commit("0.4.1", staging_dir, _metadata())

        assert cache.check("0.4.1") is True

    @pytest.mark.parametrize("missing", REQUIRED_FILES)
    def test_deleting_any_file_turns_hit_into_miss(self, cache, missing):
        with cache.staging("0.4.1") as staging_dir:
            _stage(staging_dir)
            cache.commit("0.4.1", staging_dir, _metadata())

        (cache.entry_dir("0.4.1") / missing).unlink()

        assert cache.check("0.4.1") is False

    def test_entry_paths(self, cache):
        entry = cache.entry("0.4.1")
        assert entry.directory == cache.cache_dir / "maccel-0.4.1"
        assert entry.akmod_spec.name == AKMOD_SPEC
        assert entry.maccel_spec.name == MACCEL_SPEC
        assert entry.metadata_file.name == METADATA_FILE


@pytest.mark.unit
class TestCacheCommit:
    def test_metadata_record_fields(self, cache):
        with cache.staging("0.4.1") as staging_dir:
            _stage(staging_dir)
            entry = cache.commit("0.4.1", staging_dir, _metadata())

        record = json.loads(entry.metadata_file.read_text())
        assert list(record) == [
            "maccel_version",
            "generated_at",
            "source_url",
            "license",
            "generator_version",
            "upstream_commit",
            "changelog_entries",
        ]
        assert record["maccel_version"] == "0.4.1"
        assert record["generator_version"] == "1.0.0"
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{6}Z", record["generated_at"])
        assert record["changelog_entries"] == 1
        assert cache.load_metadata("0.4.1") == _metadata(generated_at=record["generated_at"])

    def test_staging_removed_after_commit(self, cache):
        with cache.staging("0.4.1") as staging_dir:
            _stage(staging_dir)
            cache.commit("0.4.1", staging_dir, _metadata())

        assert not staging_dir.exists()
        leftovers = [p.name for p in cache.cache_dir.iterdir() if p.is_dir()]
        assert leftovers == ["maccel-0.4.1"]

    def test_staging_discarded_without_commit(self, cache):
        with cache.staging("0.4.1") as staging_dir:
            _stage(staging_dir)

        assert not staging_dir.exists()
        assert cache.check("0.4.1") is False

    def test_incomplete_staging_rejected(self, cache):
        with cache.staging("0.4.1") as staging_dir:
            (staging_dir / AKMOD_SPEC).write_text("only one\n")
            with pytest.raises(CacheWriteFailed):
                cache.commit("0.4.1", staging_dir, _metadata())

        assert not cache.entry_dir("0.4.1").exists()

    def test_existing_complete_entry_kept_without_replace(self, cache):
        with cache.staging("0.4.1") as staging_dir:
            _stage(staging_dir, "first")
            cache.commit("0.4.1", staging_dir, _metadata())
        with cache.staging("0.4.1") as staging_dir:
            _stage(staging_dir, "second")
            cache.commit("0.4.1", staging_dir, _metadata())

        assert cache.entry("0.4.1").akmod_spec.read_text() == "akmod first\n"

    def test_replace_overwrites_entry(self, cache):
        with cache.staging("0.4.1") as staging_dir:
            _stage(staging_dir, "first")
            cache.commit("0.4.1", staging_dir, _metadata())
        with cache.staging("0.4.1") as staging_dir:
            _stage(staging_dir, "second")
            cache.commit("0.4.1", staging_dir, _metadata(), replace=True)

        assert cache.entry("0.4.1").akmod_spec.read_text() == "akmod second\n"
        assert not any(p.name.startswith(".retired-") for p in cache.cache_dir.iterdir())

    def test_partial_entry_regenerated(self, cache):
        partial = cache.entry_dir("0.4.1")
        partial.mkdir(parents=True)
        (partial / AKMOD_SPEC).write_text("stale\n")

        with cache.staging("0.4.1") as staging_dir:
            _stage(staging_dir, "fresh")
            cache.commit("0.4.1", staging_dir, _metadata())

        assert cache.check("0.4.1") is True
        assert cache.entry("0.4.1").akmod_spec.read_text() == "akmod fresh\n"

    def test_unwritable_cache_root(self, tmp_path):
        from maccel_build.cache import SpecCache

        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        cache = SpecCache(blocker / "specs")

        with pytest.raises(CacheWriteFailed):
            with cache.staging("0.4.1"):
                pass


@pytest.mark.unit
class TestConcurrentWriters:
    @pytest.mark.parametrize("replace", [False, True])
    def test_writers_wait_for_lock_and_publish_one_entry(self, cache, replace):
        errors = []

        def writer(staging_dir):
            try:
                cache.commit("0.4.1", staging_dir, _metadata(), replace=replace)
            except Exception as e:  # surfaced by the assertion below
                errors.append(e)

        with cache.staging("0.4.1") as first, cache.staging("0.4.1") as second:
            _stage(first, "first")
            _stage(second, "second")
            threads = [threading.Thread(target=writer, args=(d,)) for d in (first, second)]

            with cache.lock("0.4.1"):
                for thread in threads:
                    thread.start()
                for thread in threads:
                    thread.join(timeout=0.5)

                assert all(thread.is_alive() for thread in threads)
                assert not cache.entry_dir("0.4.1").exists()

            for thread in threads:
                thread.join(timeout=10)
            assert not any(thread.is_alive() for thread in threads)

        assert errors == []
        assert cache.check("0.4.1") is True
        entry = cache.entry("0.4.1")
        marker = entry.akmod_spec.read_text().split()[1]
        assert entry.maccel_spec.read_text() == f"maccel {marker}\n"

        entries = [p.name for p in cache.cache_dir.iterdir() if p.is_dir()]
        assert entries == ["maccel-0.4.1"]
        leftovers = [p.name for p in cache.cache_dir.iterdir()
                     if p.name.startswith((".retired-", ".staging-"))]
        assert leftovers == []

    def test_lock_released_after_commit(self, cache):
        with cache.staging("0.4.1") as staging_dir:
            _stage(staging_dir)
            cache.commit("0.4.1", staging_dir, _metadata())

        acquired = threading.Event()

        def take_lock():
            with cache.lock("0.4.1"):
                acquired.set()

        thread = threading.Thread(target=take_lock)
        thread.start()
        thread.join(timeout=5)

        assert acquired.is_set()


@pytest.mark.unit
class TestListVersions:
    def test_lists_only_complete_entries(self, cache):
        for version in ("0.4.1", "0.5.0"):
            with cache.staging(version) as staging_dir:
                _stage(staging_dir)
                cache.commit(version, staging_dir, _metadata(version))
        (cache.cache_dir / "maccel-0.3.0").mkdir()

        assert cache.list_versions() == ["0.4.1", "0.5.0"]

    def test_empty_when_cache_missing(self, cache):
        assert cache.list_versions() == []

"""
Tests for Spec Template Rendering
=================================
"""

import pytest

from maccel_build.errors import CacheWriteFailed, TemplateMissing, TemplateUnreadable
from maccel_build.templates import (
    AKMOD_TEMPLATE,
    MACCEL_TEMPLATE,
    TemplateRenderer,
    count_changelog_entries,
    format_changelog,
    substitute,
)

from .conftest import FIXED_DAY

VALUES = {
    "MACCEL_VERSION": "0.4.1",
    "LICENSE": "GPL-2.0",
    "SOURCE_URL": "https://github.com/Gnarus-G/maccel/archive/refs/tags/v0.4.1.tar.gz",
    "CHANGELOG": "* Tue Jan 07 2025 Blue Build <noreply@bluebuild.org> - 0.4.1-1\n- Update to maccel 0.4.1",
}


@pytest.mark.unit
class TestFormatChangelog:
    def test_empty_body_has_only_header_and_summary(self):
        changelog = format_changelog("0.4.1", "", today=FIXED_DAY)

        assert changelog.splitlines() == [
            "* Tue Jan 07 2025 Blue Build <noreply@bluebuild.org> - 0.4.1-1",
            "- Update to maccel 0.4.1",
        ]
        assert "Upstream changes" not in changelog

    def test_default_body_adds_no_upstream_section(self):
        changelog = format_changelog("0.4.1", "Update to maccel 0.4.1", today=FIXED_DAY)
        assert "Upstream changes" not in changelog

    def test_markdown_bullets_normalized(self):
        body = "* Faster curves\n- Fixed crash\nPlain note"

        lines = format_changelog("0.4.1", body, today=FIXED_DAY).splitlines()

        assert lines[2] == "- Upstream changes:"
        assert lines[3:] == [
            "    - Faster curves",
            "    - Fixed crash",
            "  Plain note",
        ]

    def test_body_truncated_to_ten_lines(self):
        body = "\n".join(f"- change {i}" for i in range(25))

        lines = format_changelog("0.4.1", body, today=FIXED_DAY).splitlines()

        upstream_lines = lines[3:]
        assert len(upstream_lines) == 10
        assert upstream_lines[-1] == "    - change 9"

    def test_carriage_returns_dropped(self):
        changelog = format_changelog("0.4.1", "- one\r\n- two\r\n", today=FIXED_DAY)
        assert "\r" not in changelog
        assert "    - two" in changelog.splitlines()

    def test_single_entry_counted(self):
        changelog = format_changelog("0.4.1", "* bullet that looks like a header", today=FIXED_DAY)
        assert count_changelog_entries(changelog) == 1


@pytest.mark.unit
class TestSubstitute:
    def test_replaces_all_placeholders(self):
        text = "{{MACCEL_VERSION}} {{LICENSE}} {{SOURCE_URL}} {{MACCEL_VERSION}}"
        assert substitute(text, VALUES) == f"0.4.1 GPL-2.0 {VALUES['SOURCE_URL']} 0.4.1"

    def test_unknown_tokens_left_alone(self):
        assert substitute("{{OTHER}} %{version}", VALUES) == "{{OTHER}} %{version}"

    def test_substituted_values_not_rescanned(self):
        values = dict(VALUES, CHANGELOG="- mentions {{LICENSE}} literally")
        assert substitute("{{CHANGELOG}}", values) == "- mentions {{LICENSE}} literally"

    def test_missing_value_rejected(self):
        with pytest.raises(ValueError):
            substitute("{{LICENSE}}", {"LICENSE": "MIT"})


@pytest.mark.unit
class TestTemplateRenderer:
    def test_render_is_deterministic(self, templates_dir):
        renderer = TemplateRenderer(templates_dir)

        first = renderer.render(AKMOD_TEMPLATE, VALUES)
        second = renderer.render(AKMOD_TEMPLATE, VALUES)

        assert first == second
        assert first.encode() == second.encode()

    def test_rendered_content(self, templates_dir):
        rendered = TemplateRenderer(templates_dir).render(MACCEL_TEMPLATE, VALUES)

        assert "Version:        0.4.1" in rendered
        assert "License:        GPL-2.0" in rendered
        assert "{{" not in rendered
        assert rendered.endswith("- Update to maccel 0.4.1\n")

    def test_missing_template(self, tmp_path):
        with pytest.raises(TemplateMissing):
            TemplateRenderer(tmp_path).render(AKMOD_TEMPLATE, VALUES)

    def test_non_utf8_template(self, templates_dir):
        (templates_dir / MACCEL_TEMPLATE).write_bytes(b"\xff\xfe{{LICENSE}}\n")

        with pytest.raises(TemplateUnreadable) as exc_info:
            TemplateRenderer(templates_dir).render(MACCEL_TEMPLATE, VALUES)

        assert exc_info.value.exit_code == 3

    def test_render_to_unwritable_destination(self, templates_dir, tmp_path):
        output = tmp_path / "missing-dir" / "out.spec"

        with pytest.raises(CacheWriteFailed):
            TemplateRenderer(templates_dir).render_to(AKMOD_TEMPLATE, output, VALUES)

    def test_render_to_writes_file(self, templates_dir, tmp_path):
        output = tmp_path / "out.spec"

        TemplateRenderer(templates_dir).render_to(AKMOD_TEMPLATE, output, VALUES)

        assert output.read_text().startswith("Name:           maccel-kmod")

    def test_bundled_templates_render(self):
        from maccel_build.config import PACKAGE_ROOT

        renderer = TemplateRenderer(PACKAGE_ROOT / "spec_templates")
        for name in (AKMOD_TEMPLATE, MACCEL_TEMPLATE):
            rendered = renderer.render(name, VALUES)
            assert "{{" not in rendered
            assert "Version:        0.4.1" in rendered

"""
Spec Template Rendering
=======================

Renders the RPM spec templates by literal placeholder substitution and builds
the RPM ``%changelog`` entry for a release.
"""

import logging
import re
from datetime import date
from pathlib import Path
from typing import Mapping, Optional

from .errors import CacheWriteFailed, TemplateMissing, TemplateUnreadable
from .metadata import default_changelog

logger = logging.getLogger(__name__)

AKMOD_TEMPLATE = "akmod-maccel.spec.template"
MACCEL_TEMPLATE = "maccel.spec.template"

PLACEHOLDERS = ("MACCEL_VERSION", "LICENSE", "SOURCE_URL", "CHANGELOG")

# One alternation of the escaped literal tokens, so values are substituted in
# a single pass and never rescanned.
_TOKEN_PATTERN = re.compile("|".join(re.escape("{{" + name + "}}") for name in PLACEHOLDERS))

PACKAGER = "Blue Build <noreply@bluebuild.org>"
CHANGELOG_MAX_LINES = 10
_BULLET_PATTERN = re.compile(r"^[*-] ")


def format_changelog(
    version: str,
    body: str,
    today: Optional[date] = None,
    packager: str = PACKAGER,
) -> str:
    """
    Build the RPM changelog entry for *version*.

    The entry always has a dated header and a summary line. A non-default
    upstream body adds an "Upstream changes" block with at most
    ``CHANGELOG_MAX_LINES`` of it, markdown bullets rewritten as RPM bullets.
    """
    today = today or date.today()
    lines = [
        f"* {today.strftime('%a %b %d %Y')} {packager} - {version}-1",
        f"- {default_changelog(version)}",
    ]

    body = (body or "").replace("\r", "").strip("\n")
    if body and body != default_changelog(version):
        lines.append("- Upstream changes:")
        for line in body.split("\n")[:CHANGELOG_MAX_LINES]:
            lines.append("  " + _BULLET_PATTERN.sub("  - ", line))

    return "\n".join(lines)


def count_changelog_entries(changelog: str) -> int:
    """Number of dated entries (``* ...`` header lines) in a changelog."""
    return sum(1 for line in changelog.splitlines() if line.startswith("* "))


def substitute(text: str, values: Mapping[str, str]) -> str:
    """Replace every known ``{{NAME}}`` token in *text* with ``values[NAME]``."""
    missing = [name for name in PLACEHOLDERS if name not in values]
    if missing:
        raise ValueError(f"Missing template values: {', '.join(missing)}")
    return _TOKEN_PATTERN.sub(lambda match: str(values[match.group(0)[2:-2]]), text)


class TemplateRenderer:
    """Render spec templates from a templates directory."""

    def __init__(self, templates_dir: Path):
        self.templates_dir = Path(templates_dir)

    def template_path(self, template_name: str) -> Path:
        return self.templates_dir / template_name

    def render(self, template_name: str, values: Mapping[str, str]) -> str:
        """
        Render *template_name* with the four placeholder values.

        Raises:
            TemplateMissing: If the template file does not exist
            TemplateUnreadable: If the template cannot be read or is not UTF-8
        """
        path = self.template_path(template_name)
        if not path.is_file():
            logger.error(f"Template file not found: {path}")
            logger.error(f"Expected location: {self.templates_dir}/")
            raise TemplateMissing(f"Template file not found: {path}")

        logger.info(f"Generating spec from template: {template_name}")
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Cannot read template {path}: {e}")
            raise TemplateUnreadable(f"Cannot read template {path}: {e}") from e

        content = substitute(text, values)
        return content.rstrip("\n") + "\n"

    def render_to(self, template_name: str, output_path: Path, values: Mapping[str, str]) -> Path:
        """
        Render *template_name* into *output_path*.

        Raises:
            CacheWriteFailed: If the rendered spec cannot be written
        """
        output_path = Path(output_path)
        content = self.render(template_name, values)
        try:
            output_path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise CacheWriteFailed(f"Cannot write {output_path}: {e}") from e
        logger.info(f"Generated: {output_path}")
        return output_path

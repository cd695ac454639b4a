"""
Error Taxonomy
==============

Every failure that aborts an invocation derives from ``MaccelBuildError``
and carries the process exit code the CLI reports for it.
"""


class MaccelBuildError(Exception):
    """Base class for fatal build tooling errors."""

    exit_code = 1


class VersionNotFound(MaccelBuildError):
    """Requested maccel version is malformed or has no upstream release."""

    exit_code = 2


class UpstreamUnreachable(MaccelBuildError):
    """Upstream release API could not be reached within the retry budget."""

    exit_code = 5


class MetadataUnavailable(MaccelBuildError):
    """Required release metadata (the license) could not be fetched."""

    exit_code = 5


class TemplateMissing(MaccelBuildError):
    """A spec template is not present in the templates directory."""

    exit_code = 3


class TemplateUnreadable(MaccelBuildError):
    """A spec template exists but cannot be read as UTF-8 text."""

    exit_code = 3


class ValidationFailed(MaccelBuildError):
    """rpmlint reported errors for a generated spec file."""

    exit_code = 4

    def __init__(self, message: str, output: str = ""):
        super().__init__(message)
        self.output = output


class CacheWriteFailed(MaccelBuildError):
    """Generated specs could not be published into the cache."""

    exit_code = 1


class BuildTimeout(MaccelBuildError):
    """Remote RPM build did not publish a release within the wait budget."""

    exit_code = 6


class ChecksumMismatch(MaccelBuildError):
    """A downloaded package does not match its published sha256 checksum."""

    exit_code = 1

"""
Spec Validation
===============

Lints generated spec files with rpmlint. rpmlint exits non-zero for warnings
too, so only output mentioning "error" is treated as a failure.
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Iterable, List

from .errors import ValidationFailed
from .models import ValidationResult, ValidationStatus

logger = logging.getLogger(__name__)


class SpecValidator:
    """Run an external lint tool against spec files."""

    def __init__(self, lint_command: str = "rpmlint", require_lint: bool = False, timeout: int = 120):
        self.lint_command = lint_command
        self.require_lint = require_lint
        self.timeout = timeout

    def validate(self, spec_file: Path) -> ValidationResult:
        """
        Lint a single spec file.

        Raises:
            ValidationFailed: On lint errors, or a missing tool when lint is required
        """
        spec_file = Path(spec_file)
        spec_name = spec_file.name
        logger.info(f"Validating {spec_name} with {self.lint_command}...")

        executable = shutil.which(self.lint_command)
        if executable is None:
            if self.require_lint:
                raise ValidationFailed(f"{self.lint_command} not found and spec validation is required")
            logger.warning(f"{self.lint_command} not found, skipping validation")
            logger.warning(f"Install {self.lint_command} for spec file validation: dnf install rpmlint")
            return ValidationResult(path=spec_file, status=ValidationStatus.SKIPPED)

        try:
            result = subprocess.run(
                [executable, str(spec_file)],
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ValidationFailed(f"{self.lint_command} timed out after {self.timeout}s on {spec_name}") from e
        output = result.stdout or ""

        if result.returncode == 0:
            logger.info(f"{spec_name} validation passed")
            return ValidationResult(path=spec_file, status=ValidationStatus.PASSED, output=output)

        if "error" in output.lower():
            logger.error(f"Spec file validation failed for {spec_name}")
            logger.error(f"{self.lint_command} output:\n{output}")
            logger.error("Fix the spec file template and regenerate")
            raise ValidationFailed(f"Spec file validation failed for {spec_name}", output=output)

        logger.warning(f"{self.lint_command} warnings for {spec_name} (non-fatal):\n{output}")
        return ValidationResult(path=spec_file, status=ValidationStatus.WARNINGS, output=output)

    def validate_all(self, spec_files: Iterable[Path]) -> List[ValidationResult]:
        results = [self.validate(spec_file) for spec_file in spec_files]
        logger.info("All spec files validated successfully")
        return results

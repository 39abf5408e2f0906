from __future__ import annotations

from typing import List

from pydantic import Field

from schemas.strict_base import StrictBaseModel


class ValidationResult(StrictBaseModel):
    accepted: bool
    violations: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    quality_score: float = 0.0

    def report(self) -> str:
        status = "PASSED" if self.accepted else "FAILED"
        lines = [f"Validation {status} (quality score: {self.quality_score:.1f}/10.0)"]
        if self.violations:
            lines.append("Violations:")
            lines.extend(f"  - {violation}" for violation in self.violations)
        if self.warnings:
            lines.append("Warnings:")
            lines.extend(f"  - {warning}" for warning in self.warnings)
        return "\n".join(lines)

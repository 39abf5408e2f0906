from __future__ import annotations

from typing import Iterable, List, Optional


class ExperienceRepositoryError(RuntimeError):
    """Base class for experience repository failures."""


class ValidationError(ExperienceRepositoryError):
    """Raised when a submission fails one or more quality rules."""

    def __init__(
        self,
        violations: Iterable[str],
        warnings: Optional[Iterable[str]] = None,
        quality_score: float = 0.0,
    ) -> None:
        self.violations: List[str] = list(violations)
        self.warnings: List[str] = list(warnings or [])
        self.quality_score = quality_score
        super().__init__(self.report())

    def report(self) -> str:
        lines = [
            f"Experience rejected: {len(self.violations)} violation(s) "
            f"(quality score {self.quality_score:.1f}/10.0)"
        ]
        lines.extend(f"  - {violation}" for violation in self.violations)
        return "\n".join(lines)


class CapacityExceededError(ExperienceRepositoryError):
    """Raised when the store already holds its maximum number of records."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"Experience store is full (max {limit} records)")


class PersistenceError(ExperienceRepositoryError):
    """Raised when the store file could not be written; memory is rolled back."""


class CorruptDatabaseError(ExperienceRepositoryError):
    """Raised internally when a store document cannot be parsed."""

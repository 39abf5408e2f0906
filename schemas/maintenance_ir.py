from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from pydantic import Field

from schemas.accountability_ir import AccountabilityReport
from schemas.strict_base import StrictBaseModel


class MaintenanceReport(StrictBaseModel):
    processed: int = 0
    kept: int = 0
    removed_as_invalid: int = 0
    removed_as_duplicate: int = 0
    by_category: Dict[str, int] = Field(default_factory=dict)
    by_technology: Dict[str, int] = Field(default_factory=dict)
    backup_path: Optional[str] = None

    @property
    def removed(self) -> int:
        return self.removed_as_invalid + self.removed_as_duplicate


class ValidationSummary(StrictBaseModel):
    total: int = 0
    invalid: int = 0
    violations: List[str] = Field(default_factory=list)
    violations_by_category: Dict[str, int] = Field(default_factory=dict)
    violations_by_technology: Dict[str, int] = Field(default_factory=dict)
    category_counts: Dict[str, int] = Field(default_factory=dict)


class PurgeReport(StrictBaseModel):
    before: int = 0
    after: int = 0
    removed_test_data: int = 0
    removed_unreadable: int = 0
    backup_path: Optional[str] = None


class QualityReport(StrictBaseModel):
    total: int = 0
    contributors: int = 0
    unique_categories: int = 0
    unique_technologies: int = 0
    test_data_count: int = 0
    unknown_versions: int = 0
    short_experiences: int = 0
    top_categories: List[Tuple[str, int]] = Field(default_factory=list)
    top_technologies: List[Tuple[str, int]] = Field(default_factory=list)
    suspicious: List[str] = Field(default_factory=list)
    quality_pct: float = 100.0
    accountability: AccountabilityReport = Field(default_factory=AccountabilityReport)

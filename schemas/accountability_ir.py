from __future__ import annotations

from typing import List

from pydantic import Field

from schemas.strict_base import StrictBaseModel


class ContributorStats(StrictBaseModel):
    contributor_id: str
    model: str = ""
    record_count: int = 0
    average_quality: float = 0.0
    accepted_fraction: float = 0.0


class AccountabilityReport(StrictBaseModel):
    total_records: int = 0
    contributors: List[ContributorStats] = Field(default_factory=list)

from __future__ import annotations

from typing import Dict, List, Literal, Optional, Sequence

from pydantic import Field, model_validator

from schemas.experience_ir import ExperienceRecord
from schemas.strict_base import CamelModel, StrictBaseModel

SCHEMA_VERSION = "2.0.0"

LoadSource = Literal["fresh", "primary", "backup", "empty"]


class StoreStatistics(CamelModel):
    total_experiences: int = 0
    categories: List[str] = Field(default_factory=list)
    contributing_agents: List[str] = Field(default_factory=list)


class StoreDocument(CamelModel):
    version: str = SCHEMA_VERSION
    last_updated: str = ""
    experiences: List[ExperienceRecord] = Field(default_factory=list)
    statistics: StoreStatistics = Field(default_factory=StoreStatistics)

    @model_validator(mode="after")
    def _validate_entries(self) -> "StoreDocument":
        for index, record in enumerate(self.experiences):
            if not record.id.strip():
                raise ValueError(f"experience #{index + 1} is missing an id")
            if not record.category.strip():
                raise ValueError(f"experience {record.id} is missing a category")
        return self

    @classmethod
    def from_records(cls, records: Sequence[ExperienceRecord], last_updated: str) -> "StoreDocument":
        categories: List[str] = []
        agents: List[str] = []
        for record in records:
            if record.category not in categories:
                categories.append(record.category)
            if record.contributor_id not in agents:
                agents.append(record.contributor_id)
        return cls(
            version=SCHEMA_VERSION,
            last_updated=last_updated,
            experiences=list(records),
            statistics=StoreStatistics(
                total_experiences=len(records),
                categories=categories,
                contributing_agents=agents,
            ),
        )


class StoreStats(StrictBaseModel):
    count: int = 0
    by_category: Dict[str, int] = Field(default_factory=dict)
    by_contributor: Dict[str, int] = Field(default_factory=dict)


class LoadOutcome(StrictBaseModel):
    source: LoadSource
    path: str = ""
    record_count: int = 0
    error: Optional[str] = None

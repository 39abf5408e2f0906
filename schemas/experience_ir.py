from __future__ import annotations

from enum import Enum
from threading import Lock
from typing import Dict, List, Set, Union

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from schemas.strict_base import CamelModel


class TechnologyType(str, Enum):
    FRAMEWORK = "framework"
    LIBRARY = "library"
    LANGUAGE = "language"
    DATABASE = "database"
    RUNTIME = "runtime"
    TOOL = "tool"
    PLATFORM = "platform"
    SERVICE = "service"
    PROTOCOL = "protocol"


_registry_lock = Lock()
_extra_technology_types: Set[str] = set()


def register_technology_type(name: str) -> str:
    """Register a technology type outside the built-in enum, e.g. ``message-broker``."""
    key = (name or "").strip().lower()
    if not key:
        raise ValueError("technology type name must be non-empty")
    with _registry_lock:
        _extra_technology_types.add(key)
    return key


def is_known_technology_type(value: str) -> bool:
    key = (value or "").strip().lower()
    if key in {member.value for member in TechnologyType}:
        return True
    with _registry_lock:
        return key in _extra_technology_types


EvidenceValue = Union[str, int, float]


class Technology(CamelModel):
    name: str
    version: str
    type: str = ""


class HarmonyEntry(CamelModel):
    technology: str
    rating: float
    notes: str = ""


class ExperienceRecord(CamelModel):
    model_config = ConfigDict(
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    id: str
    timestamp: str
    contributor_id: str
    model: str
    category: str
    technology: Technology
    ratings: Dict[str, float] = Field(default_factory=dict)
    harmony_entries: List[HarmonyEntry] = Field(default_factory=list)
    evidence: Dict[str, EvidenceValue] = Field(default_factory=dict)
    working_aspects: List[str] = Field(default_factory=list)
    improvement_areas: List[str] = Field(default_factory=list)
    recommendation: str = ""
    tags: List[str] = Field(default_factory=list)
    quality_score: float = 0.0

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, value: List[str]) -> List[str]:
        seen: Set[str] = set()
        tags: List[str] = []
        for tag in value:
            if tag in seen:
                continue
            seen.add(tag)
            tags.append(tag)
        return tags

    def to_payload(self) -> Dict[str, object]:
        return self.model_dump(by_alias=True)

"""Quality gate for experience submissions.

Every function here is pure: no I/O, no clock, no randomness. The same
candidate always yields the same ``ValidationResult``, which is what lets the
maintenance pass re-run the gate over persisted records and get the verdict
the submitter got.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from pydantic import BaseModel

from schemas.experience_ir import is_known_technology_type
from schemas.validation_ir import ValidationResult

FORBIDDEN_CATEGORIES: FrozenSet[str] = frozenset(
    {
        "test",
        "test1",
        "test2",
        "testing",
        "temp",
        "placeholder",
        "example",
        "demo",
        "sample",
        "mock",
        "fake",
        "dummy",
        "debug",
        "tmp",
    }
)

FORBIDDEN_TECHNOLOGIES: FrozenSet[str] = frozenset(
    {
        "testtech",
        "unknown",
        "genericlib",
        "placeholder",
        "example",
        "test",
        "demo",
        "sample",
        "mock",
        "fake",
        "dummy",
        "temp",
        "genericframework",
        "testframework",
        "unknowntech",
        "sometechnology",
        "anytechnology",
    }
)

GENERIC_PATTERN = re.compile(
    r"test|temp|placeholder|example|generic|demo|sample|mock|fake|dummy|unknown",
    re.IGNORECASE,
)

BOILERPLATE_PHRASES = (
    "this is a test",
    "lorem ipsum",
    "placeholder text",
    "example content",
    "sample text",
    "test data",
    "dummy content",
    "generic description",
)

REQUIRED_FIELDS = ("technology", "category", "contributorId", "model", "timestamp")

SCORE_PENALTY_TERMS = ("test", "example", "placeholder", "unknown")
SCORE_BONUS_TERMS = ("performance", "improvement", "optimization")

SIGNATURE_CONTENT_CHARS = 50

_DECIMAL = re.compile(r"\d+\.\d+")
_PERCENT = re.compile(r"\d+%")

_SNAKE_TO_CAMEL = {
    "contributor_id": "contributorId",
    "harmony_entries": "harmonyEntries",
    "working_aspects": "workingAspects",
    "improvement_areas": "improvementAreas",
    "quality_score": "qualityScore",
}


@dataclass(frozen=True)
class ValidationRules:
    min_content_length: int = 50
    min_technology_name_length: int = 3
    min_quality_score: float = 7.5
    contributor_prefix: str = "agent_"
    min_contributor_length: int = 10
    min_unique_token_ratio: float = 0.5
    forbidden_categories: FrozenSet[str] = FORBIDDEN_CATEGORIES
    forbidden_technologies: FrozenSet[str] = FORBIDDEN_TECHNOLOGIES

    @classmethod
    def from_config(cls, cfg: Optional[Mapping[str, object]]) -> "ValidationRules":
        rules = cls()
        if not cfg:
            return rules
        updates: Dict[str, Any] = {}
        for name in ("min_content_length", "min_technology_name_length", "min_contributor_length"):
            if name in cfg:
                updates[name] = int(cfg[name])  # type: ignore[arg-type]
        for name in ("min_quality_score", "min_unique_token_ratio"):
            if name in cfg:
                updates[name] = float(cfg[name])  # type: ignore[arg-type]
        if "contributor_prefix" in cfg:
            updates["contributor_prefix"] = str(cfg["contributor_prefix"] or "")
        for name, base in (
            ("forbidden_categories", FORBIDDEN_CATEGORIES),
            ("forbidden_technologies", FORBIDDEN_TECHNOLOGIES),
        ):
            extra = cfg.get(f"extra_{name}")
            if isinstance(extra, (list, tuple)):
                updates[name] = base | {str(item).lower() for item in extra}
        return replace(rules, **updates)


DEFAULT_RULES = ValidationRules()


def as_candidate(candidate: object) -> Dict[str, Any]:
    """Normalize a model or mapping into a camelCase dict the gate can read."""
    if isinstance(candidate, BaseModel):
        return candidate.model_dump(by_alias=True)
    if not isinstance(candidate, Mapping):
        return {}
    data: Dict[str, Any] = {}
    for key, value in candidate.items():
        data[_SNAKE_TO_CAMEL.get(key, key)] = value
    return data


def _text(value: object) -> Optional[str]:
    if value is None or isinstance(value, (Mapping, list, tuple)):
        return None
    text = str(value).strip()
    return text or None


def technology_name(candidate: object) -> Optional[str]:
    data = as_candidate(candidate)
    tech = data.get("technology")
    if isinstance(tech, Mapping):
        return _text(tech.get("name"))
    return _text(tech)


def technology_version(candidate: object) -> Optional[str]:
    data = as_candidate(candidate)
    tech = data.get("technology")
    if isinstance(tech, Mapping) and "version" in tech:
        return _text(tech.get("version"))
    return _text(data.get("version"))


def technology_type(candidate: object) -> Optional[str]:
    tech = as_candidate(candidate).get("technology")
    if isinstance(tech, Mapping):
        return _text(tech.get("type"))
    return None


def experience_content(candidate: object) -> str:
    """Recommendation, then evidence as ``key: value``, then working aspects."""
    data = as_candidate(candidate)
    parts: List[str] = []
    recommendation = _text(data.get("recommendation"))
    if recommendation:
        parts.append(recommendation)
    evidence = data.get("evidence")
    if isinstance(evidence, Mapping):
        for key, value in evidence.items():
            value_text = _text(value)
            if value_text:
                parts.append(f"{key}: {value_text}")
    aspects = data.get("workingAspects")
    if isinstance(aspects, (list, tuple)):
        for aspect in aspects:
            aspect_text = _text(aspect)
            if aspect_text:
                parts.append(aspect_text)
    return " ".join(parts)


def experience_signature(candidate: object) -> str:
    data = as_candidate(candidate)
    return "|".join(
        [
            technology_name(data) or "",
            _text(data.get("category")) or "",
            technology_version(data) or "",
            experience_content(data)[:SIGNATURE_CONTENT_CHARS],
        ]
    )


def rating_problem(value: object) -> Optional[str]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return f"must be a number, got {value!r}"
    number = float(value)
    if not math.isfinite(number):
        return "cannot be NaN or infinite"
    if number < 0.0 or number > 10.0:
        return f"must be between 0.0 and 10.0, got {number}"
    nearest = round(number * 10) / 10
    if abs(number - nearest) > 1e-9:
        return f"must have 0.1 precision, got {number}. Did you mean {nearest}?"
    return None


def is_boilerplate(content: str, rules: ValidationRules = DEFAULT_RULES) -> bool:
    lowered = content.lower()
    if any(phrase in lowered for phrase in BOILERPLATE_PHRASES):
        return True
    tokens = content.split()
    if len(tokens) > 5:
        if len(set(tokens)) / len(tokens) < rules.min_unique_token_ratio:
            return True
    return False


def is_test_data(candidate: object, rules: ValidationRules = DEFAULT_RULES) -> bool:
    data = as_candidate(candidate)
    technology = technology_name(data)
    category = _text(data.get("category"))
    if technology and technology.lower() in rules.forbidden_technologies:
        return True
    if category and category.lower() in rules.forbidden_categories:
        return True
    if technology and GENERIC_PATTERN.search(technology):
        return True
    return False


def quality_score(candidate: object) -> float:
    data = as_candidate(candidate)
    content = experience_content(data)
    score = 10.0
    if len(content) < 100:
        score -= 2.0
    if len(content) < 50:
        score -= 2.0
    lowered = content.lower()
    for term in SCORE_PENALTY_TERMS:
        if term in lowered:
            score -= 1.0
    for term in SCORE_BONUS_TERMS:
        if term in content:
            score += 0.5
    if _DECIMAL.search(content):
        score += 0.5
    if _PERCENT.search(content):
        score += 0.5
    version = technology_version(data)
    if version and _DECIMAL.search(version):
        score += 1.0
    return max(0.0, min(10.0, score))


def validate_experience(candidate: object, rules: Optional[ValidationRules] = None) -> ValidationResult:
    """Run every rule and collect all violations instead of stopping at the first."""
    rules = rules or DEFAULT_RULES
    data = as_candidate(candidate)
    violations: List[str] = []
    warnings: List[str] = []

    for name in REQUIRED_FIELDS:
        value = data.get(name)
        if name == "technology":
            value = technology_name(data)
        if value is None or (isinstance(value, str) and not value.strip()):
            violations.append(f"Missing required field: {name}")

    technology = technology_name(data)
    if technology:
        if len(technology) < rules.min_technology_name_length:
            violations.append(f"Technology name too short: {technology}")
        if technology.lower() in rules.forbidden_technologies:
            violations.append(f"Forbidden technology: {technology}")
        if GENERIC_PATTERN.search(technology):
            violations.append(f"Generic/test technology pattern detected: {technology}")

    version = technology_version(data)
    if not version or version.lower() == "unknown":
        violations.append("Specific technology version is required (not 'unknown')")

    tech_type = technology_type(data)
    if tech_type and not is_known_technology_type(tech_type):
        warnings.append(f"Unrecognized technology type: {tech_type}")

    category = _text(data.get("category"))
    if category:
        if category.lower() in rules.forbidden_categories:
            violations.append(f"Forbidden category: {category}")
        if GENERIC_PATTERN.search(category):
            violations.append(f"Generic/test category pattern detected: {category}")

    model = _text(data.get("model"))
    if model and model.lower() == "unknown":
        violations.append("Model information is required (not 'unknown')")

    contributor = _text(data.get("contributorId"))
    if contributor:
        if (
            not contributor.startswith(rules.contributor_prefix)
            or len(contributor) < rules.min_contributor_length
        ):
            violations.append(f"Invalid contributor ID format: {contributor}")

    ratings = data.get("ratings")
    if ratings is not None and not isinstance(ratings, Mapping):
        violations.append("Ratings must be a mapping of aspect to number")
    elif ratings:
        for aspect, value in ratings.items():
            problem = rating_problem(value)
            if problem:
                violations.append(f"Rating '{aspect}' {problem}")

    harmony = data.get("harmonyEntries")
    if harmony is not None and not isinstance(harmony, (list, tuple)):
        violations.append("Harmony entries must be a list")
    elif harmony:
        for index, entry in enumerate(harmony, start=1):
            if not isinstance(entry, Mapping):
                violations.append(f"Harmony entry #{index} must be an object")
                continue
            if not _text(entry.get("technology")):
                violations.append(f"Harmony entry #{index} is missing a technology")
            problem = rating_problem(entry.get("rating"))
            if problem:
                violations.append(f"Harmony entry #{index} rating {problem}")

    content = experience_content(data)
    if len(content) < rules.min_content_length:
        violations.append(
            f"Experience content too short (minimum {rules.min_content_length} characters)"
        )
    if content:
        if GENERIC_PATTERN.search(content):
            warnings.append("Experience content contains generic/test language")
        if is_boilerplate(content, rules):
            violations.append("Experience content appears to be generic or placeholder text")

    score = quality_score(data)
    if score < rules.min_quality_score:
        violations.append(
            f"Quality score too low: {score:.1f} (minimum {rules.min_quality_score:.1f})"
        )

    if len(experience_signature(data)) < 20:
        warnings.append("Experience signature is very short, might be a duplicate")

    accepted = not violations and score >= rules.min_quality_score
    return ValidationResult(
        accepted=accepted,
        violations=violations,
        warnings=warnings,
        quality_score=score,
    )

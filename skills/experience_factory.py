from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional, Tuple

from pydantic import ValidationError as SchemaError

from schemas.experience_ir import ExperienceRecord
from schemas.validation_ir import ValidationResult
from skills.experience_validator import ValidationRules, as_candidate, validate_experience

MAX_FIELD_CHARS = 10_000


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_experience_id() -> str:
    return f"exp-{uuid.uuid4().hex[:12]}"


def oversized_fields(value: Any, limit: int, path: str = "") -> List[str]:
    problems: List[str] = []
    if isinstance(value, str):
        if len(value) > limit:
            problems.append(f"Field '{path}' is too long: {len(value)} characters (max {limit})")
    elif isinstance(value, Mapping):
        for key, item in value.items():
            child = f"{path}.{key}" if path else str(key)
            if isinstance(key, str) and len(key) > limit:
                problems.append(f"Key in '{path or 'record'}' is too long: {len(key)} characters (max {limit})")
            problems.extend(oversized_fields(item, limit, child))
    elif isinstance(value, (list, tuple, set)):
        for index, item in enumerate(value):
            problems.extend(oversized_fields(item, limit, f"{path}[{index}]"))
    return problems


def _schema_violations(exc: SchemaError) -> List[str]:
    violations = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "record"
        violations.append(f"Invalid field '{location}': {error.get('msg', 'invalid value')}")
    return violations


def create_experience(
    candidate: object,
    rules: Optional[ValidationRules] = None,
    max_field_chars: int = MAX_FIELD_CHARS,
) -> Tuple[Optional[ExperienceRecord], ValidationResult]:
    """Build an ``ExperienceRecord`` from a raw submission.

    Returns ``(record, result)`` on acceptance and ``(None, result)`` with the
    full violation list otherwise. ``id`` and ``timestamp`` are always generated
    here; values supplied by the caller are discarded.
    """
    data = as_candidate(candidate)
    data["id"] = new_experience_id()
    data["timestamp"] = _iso_now()
    tech = data.get("technology")
    if isinstance(tech, str) and "version" in data:
        data["technology"] = {"name": tech, "version": data.pop("version"), "type": ""}

    oversized = oversized_fields(data, max_field_chars)
    if oversized:
        return None, ValidationResult(accepted=False, violations=oversized)

    result = validate_experience(data, rules)
    if not result.accepted:
        return None, result

    data["qualityScore"] = result.quality_score
    try:
        record = ExperienceRecord.model_validate(data)
    except SchemaError as exc:
        return None, ValidationResult(
            accepted=False,
            violations=_schema_violations(exc),
            warnings=result.warnings,
            quality_score=result.quality_score,
        )
    return record, result

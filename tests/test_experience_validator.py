from __future__ import annotations

from schemas.experience_ir import register_technology_type
from skills.experience_validator import (
    ValidationRules,
    experience_content,
    experience_signature,
    is_boilerplate,
    is_test_data,
    quality_score,
    rating_problem,
    validate_experience,
)

_CONTENT = (
    "Async route handlers with dependency injection kept request latency low under "
    "concurrent load; pydantic models caught malformed payloads before they reached "
    "business logic."
)


def _candidate(**overrides: object) -> dict:
    data = {
        "id": "exp-0a1b2c3d4e5f",
        "timestamp": "2026-03-01T12:00:00+00:00",
        "contributorId": "agent_3f9a1c2b7d",
        "model": "claude-sonnet",
        "category": "web-framework",
        "technology": {"name": "FastAPI", "version": "0.110.0", "type": "framework"},
        "ratings": {"performance": 8.5, "ergonomics": 9.0},
        "recommendation": _CONTENT,
        "evidence": {"p95_latency_ms": 42},
        "workingAspects": ["dependency injection"],
    }
    data.update(overrides)
    return data


def test_well_formed_candidate_is_accepted() -> None:
    result = validate_experience(_candidate())
    assert result.accepted
    assert result.violations == []
    assert result.quality_score >= 7.5


def test_missing_fields_are_all_reported_together() -> None:
    data = _candidate()
    for key in ("category", "contributorId", "model", "timestamp"):
        data.pop(key)
    result = validate_experience(data)
    assert not result.accepted
    for key in ("category", "contributorId", "model", "timestamp"):
        assert f"Missing required field: {key}" in result.violations


def test_forbidden_category_and_technology_are_rejected() -> None:
    result = validate_experience(
        _candidate(category="test", technology={"name": "TestTech", "version": "1.0.0"})
    )
    assert not result.accepted
    assert "Forbidden category: test" in result.violations
    assert "Forbidden technology: TestTech" in result.violations
    assert any("Generic/test technology pattern" in item for item in result.violations)


def test_unknown_version_is_rejected() -> None:
    result = validate_experience(
        _candidate(technology={"name": "FastAPI", "version": "unknown"})
    )
    assert "Specific technology version is required (not 'unknown')" in result.violations


def test_legacy_top_level_version_is_read() -> None:
    data = _candidate(technology="FastAPI", version="0.110.0")
    result = validate_experience(data)
    assert result.accepted, result.violations


def test_contributor_id_shape() -> None:
    short = validate_experience(_candidate(contributorId="agent_1"))
    assert "Invalid contributor ID format: agent_1" in short.violations
    wrong_prefix = validate_experience(_candidate(contributorId="robot_3f9a1c2b7d"))
    assert not wrong_prefix.accepted


def test_rating_precision_names_nearest_value() -> None:
    result = validate_experience(_candidate(ratings={"performance": 8.73}))
    assert not result.accepted
    [violation] = [item for item in result.violations if item.startswith("Rating")]
    assert "8.73" in violation
    assert "8.7" in violation.split("Did you mean")[1]


def test_rating_problem_rejects_out_of_range_and_non_numbers() -> None:
    assert rating_problem(10.0) is None
    assert rating_problem(0) is None
    assert rating_problem(10.5) is not None
    assert rating_problem(-0.1) is not None
    assert rating_problem(True) is not None
    assert rating_problem("9") is not None
    assert rating_problem(float("nan")) is not None


def test_harmony_ratings_are_checked() -> None:
    result = validate_experience(
        _candidate(harmonyEntries=[{"technology": "SQLAlchemy", "rating": 7.25}])
    )
    assert any(item.startswith("Harmony entry #1 rating") for item in result.violations)


def test_short_content_is_rejected() -> None:
    result = validate_experience(
        _candidate(recommendation="Works well.", evidence={}, workingAspects=[])
    )
    assert "Experience content too short (minimum 50 characters)" in result.violations
    assert any(item.startswith("Quality score too low") for item in result.violations)


def test_boilerplate_detection() -> None:
    assert is_boilerplate("Lorem ipsum dolor sit amet, consectetur adipiscing elit")
    assert is_boilerplate("fast fast fast fast fast fast fast fast")
    # Five tokens or fewer never trip the repetition rule.
    assert not is_boilerplate("fast fast fast fast fast")
    assert not is_boilerplate(_CONTENT)


def test_unregistered_technology_type_is_a_warning_only() -> None:
    data = _candidate(technology={"name": "FastAPI", "version": "0.110.0", "type": "message-broker"})
    result = validate_experience(data)
    assert result.accepted
    assert "Unrecognized technology type: message-broker" in result.warnings

    register_technology_type("message-broker")
    assert validate_experience(data).warnings == []


def test_quality_score_rewards_specific_content() -> None:
    vague = _candidate(
        recommendation="It was fine for the job and did what we needed it to.",
        evidence={},
        workingAspects=[],
    )
    assert quality_score(vague) < quality_score(_candidate())
    assert 0.0 <= quality_score({}) <= 10.0


def test_stricter_rules_tighten_the_gate() -> None:
    rules = ValidationRules.from_config({"min_content_length": 500})
    assert not validate_experience(_candidate(), rules).accepted
    assert validate_experience(_candidate()).accepted


def test_extra_forbidden_categories_from_config() -> None:
    rules = ValidationRules.from_config({"extra_forbidden_categories": ["Scratch"]})
    result = validate_experience(_candidate(category="scratch"), rules)
    assert "Forbidden category: scratch" in result.violations


def test_content_and_signature_shape() -> None:
    data = _candidate()
    content = experience_content(data)
    assert content.startswith(_CONTENT)
    assert "p95_latency_ms: 42" in content
    assert content.endswith("dependency injection")
    assert experience_signature(data) == f"FastAPI|web-framework|0.110.0|{content[:50]}"


def test_is_test_data_uses_forbidden_sets_and_pattern() -> None:
    assert is_test_data(_candidate(category="demo"))
    assert is_test_data(_candidate(technology={"name": "MockServer", "version": "1.0"}))
    assert not is_test_data(_candidate())


def test_snake_case_keys_are_accepted() -> None:
    data = _candidate()
    data["contributor_id"] = data.pop("contributorId")
    data["working_aspects"] = data.pop("workingAspects")
    assert validate_experience(data).accepted


def test_report_lists_each_violation_on_its_own_line() -> None:
    result = validate_experience(_candidate(category="mock", contributorId="agent_1"))
    lines = result.report().splitlines()
    assert lines[0].startswith("Validation FAILED")
    assert "  - Forbidden category: mock" in lines
    assert "  - Invalid contributor ID format: agent_1" in lines


def test_boilerplate_sentence_is_rejected() -> None:
    phrase = "This is a test placeholder example."
    result = validate_experience(
        _candidate(recommendation=phrase * 2, evidence={}, workingAspects=[])
    )
    assert not result.accepted
    assert "Experience content appears to be generic or placeholder text" in result.violations


def test_bonus_terms_are_case_sensitive() -> None:
    def _scored(content: str) -> float:
        return quality_score(
            _candidate(
                technology={"name": "PgBouncer", "version": "7"},
                recommendation=content,
                evidence={},
                workingAspects=[],
            )
        )

    lower = "Connection pooling gave a measurable performance gain on the checkout service."
    upper = "Connection pooling gave a measurable Performance gain on the checkout service."
    assert 50 <= len(lower) < 100
    assert _scored(lower) == 8.5
    assert _scored(upper) == 8.0

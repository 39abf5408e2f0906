from __future__ import annotations

import json
from pathlib import Path
from typing import List

from skills.experience_factory import create_experience
from skills.experience_store import ExperienceStore
from skills.experience_validator import ValidationRules
from skills.quality_maintenance import QualityMaintenance


def _candidate(index: int = 0, **overrides: object) -> dict:
    data = {
        "contributorId": "agent_3f9a1c2b7d",
        "model": "claude-sonnet",
        "category": "message-queue",
        "technology": {"name": "RabbitMQ", "version": "3.13.1", "type": "service"},
        "recommendation": (
            f"Run {index}: quorum queues survived a broker restart without losing "
            "acknowledged deliveries; publisher confirms added roughly 4% latency."
        ),
        "evidence": {"lost_messages": 0},
    }
    data.update(overrides)
    return data


def _entry(index: int = 0, **overrides: object) -> dict:
    """A persisted-shape entry, bypassing the submission gate."""
    record, result = create_experience(_candidate(index))
    assert record is not None, result.violations
    payload = record.to_payload()
    payload.update(overrides)
    return payload


def _write_entries(path: Path, entries: List[object]) -> None:
    document = {"version": "2.0.0", "lastUpdated": "", "experiences": entries}
    path.write_text(json.dumps(document), encoding="utf-8")


def test_run_compacts_duplicates(tmp_path: Path) -> None:
    path = tmp_path / "experiences.json"
    store = ExperienceStore.at(path)
    store.record(_candidate(1))
    store.record(_candidate(1))
    store.record(_candidate(2))

    report = QualityMaintenance(store).run()
    assert report.processed == 3
    assert report.kept == 2
    assert report.removed_as_duplicate == 1
    assert report.removed_as_invalid == 0
    assert report.removed == 1
    assert report.by_category == {"message-queue": 2}
    assert report.by_technology == {"RabbitMQ": 2}
    assert report.backup_path is not None and Path(report.backup_path).exists()
    assert len(ExperienceStore.at(path).all()) == 2


def test_run_keeps_the_first_duplicate(tmp_path: Path) -> None:
    path = tmp_path / "experiences.json"
    store = ExperienceStore.at(path)
    first = store.record(_candidate(1))
    store.record(_candidate(1))
    QualityMaintenance(store).run()
    assert [record.id for record in store.all()] == [first]


def test_run_is_idempotent(tmp_path: Path) -> None:
    path = tmp_path / "experiences.json"
    _write_entries(path, [_entry(1), _entry(1), _entry(2, category="demo")])
    store = ExperienceStore.at(path)
    maintenance = QualityMaintenance(store)

    first = maintenance.run()
    assert first.removed_as_duplicate == 1
    assert first.removed_as_invalid == 1

    second = maintenance.run()
    assert second.processed == first.kept
    assert second.removed == 0
    assert [record.id for record in store.all()] == [
        record.id for record in ExperienceStore.at(path).all()
    ]


def test_run_counts_structurally_broken_entries_as_invalid(tmp_path: Path) -> None:
    path = tmp_path / "experiences.json"
    _write_entries(path, [_entry(1), "garbage", {"id": "exp-1", "category": "orm"}])
    store = ExperienceStore.at(path)

    report = QualityMaintenance(store).run()
    assert report.processed == 3
    assert report.kept == 1
    assert report.removed_as_invalid == 2
    fresh = ExperienceStore.at(path)
    assert len(fresh.all()) == 1
    assert fresh.load_outcome is not None
    assert fresh.load_outcome.source == "primary"


def test_run_applies_tightened_rules(tmp_path: Path) -> None:
    path = tmp_path / "experiences.json"
    store = ExperienceStore.at(path)
    store.record(_candidate(1))
    strict = ValidationRules(min_content_length=1000)
    report = QualityMaintenance(store, rules=strict).run()
    assert report.removed_as_invalid == 1
    assert store.all() == []


def test_run_on_missing_database_writes_nothing(tmp_path: Path) -> None:
    path = tmp_path / "experiences.json"
    report = QualityMaintenance(ExperienceStore.at(path)).run()
    assert report.processed == 0
    assert report.backup_path is None
    assert not path.exists()


def test_validate_is_read_only(tmp_path: Path) -> None:
    path = tmp_path / "experiences.json"
    _write_entries(
        path,
        [_entry(1), _entry(2, category="demo"), _entry(3, contributorId="bot")],
    )
    before = path.read_bytes()
    summary = QualityMaintenance(ExperienceStore.at(path)).validate()

    assert path.read_bytes() == before
    assert summary.total == 3
    assert summary.invalid == 2
    assert summary.category_counts == {"message-queue": 2, "demo": 1}
    assert summary.violations_by_category == {"demo": 1, "message-queue": 1}
    assert summary.violations_by_technology == {"rabbitmq": 2}
    assert "[2] Forbidden category: demo" in summary.violations
    assert "[3] Invalid contributor ID format: bot" in summary.violations


def test_purge_test_removes_only_test_data(tmp_path: Path) -> None:
    path = tmp_path / "experiences.json"
    kept = _entry(1)
    short = _entry(4, recommendation="", evidence={})
    _write_entries(
        path,
        [
            kept,
            _entry(2, category="demo"),
            _entry(3, technology={"name": "MockServer", "version": "5.15.0", "type": "tool"}),
            short,
            "garbage",
        ],
    )
    store = ExperienceStore.at(path)
    report = QualityMaintenance(store).purge_test()

    assert report.before == 5
    assert report.after == 2
    assert report.removed_test_data == 2
    assert report.removed_unreadable == 1
    assert [record.id for record in ExperienceStore.at(path).all()] == [kept["id"], short["id"]]


def test_quality_report_counts_and_accountability(tmp_path: Path) -> None:
    path = tmp_path / "experiences.json"
    _write_entries(
        path,
        [
            _entry(1),
            _entry(2),
            _entry(3, category="demo"),
            _entry(4, contributorId="agent_77c0e4aa19", model="gpt-4o", category="broker-ops"),
        ],
    )
    report = QualityMaintenance(ExperienceStore.at(path)).quality_report()

    assert report.total == 4
    assert report.contributors == 2
    assert report.unique_categories == 3
    assert report.unique_technologies == 1
    assert report.test_data_count == 1
    assert report.unknown_versions == 0
    assert report.short_experiences == 0
    assert report.quality_pct == 75.0
    assert report.top_categories == [("message-queue", 2), ("broker-ops", 1), ("demo", 1)]
    assert report.top_technologies == [("RabbitMQ", 4)]
    assert report.suspicious == ["Test data: RabbitMQ (demo)"]

    accountability = report.accountability
    assert accountability.total_records == 4
    assert [stats.contributor_id for stats in accountability.contributors] == [
        "agent_3f9a1c2b7d",
        "agent_77c0e4aa19",
    ]
    top = accountability.contributors[0]
    assert top.record_count == 3
    assert abs(top.accepted_fraction - 2 / 3) < 1e-9


def test_quality_report_on_empty_store(tmp_path: Path) -> None:
    report = QualityMaintenance(ExperienceStore.at(tmp_path / "experiences.json")).quality_report()
    assert report.total == 0
    assert report.quality_pct == 100.0
    assert report.accountability.contributors == []


def test_quality_report_accountability_uses_the_same_entries(tmp_path: Path) -> None:
    path = tmp_path / "experiences.json"
    _write_entries(
        path,
        [_entry(1), _entry(2, contributorId="agent_77c0e4aa19"), "garbage"],
    )
    store = ExperienceStore.at(path)
    report = QualityMaintenance(store).quality_report()

    # The loaded set fell back to empty, the report still covers the file.
    assert store.all() == []
    assert report.total == 3
    assert report.contributors == 2
    assert report.accountability.total_records == 2
    assert sorted(stats.contributor_id for stats in report.accountability.contributors) == [
        "agent_3f9a1c2b7d",
        "agent_77c0e4aa19",
    ]

"""Offline passes over the persisted experience store.

``run`` is the full compaction (re-validate, deduplicate, rewrite) and is
idempotent: a second pass over its own output removes nothing. ``validate``
and ``quality_report`` are read-only; ``purge_test`` only drops entries whose
technology or category is on the forbidden lists.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, List, Mapping, Optional, Set, Tuple

from pydantic import ValidationError as SchemaError

from schemas.experience_ir import ExperienceRecord
from schemas.maintenance_ir import MaintenanceReport, PurgeReport, QualityReport, ValidationSummary
from skills.accountability import AccountabilityReporter
from skills.experience_store import ExperienceStore
from skills.experience_validator import (
    ValidationRules,
    experience_content,
    experience_signature,
    is_test_data,
    technology_name,
    technology_version,
    validate_experience,
)

logger = logging.getLogger(__name__)

SHORT_CONTENT_CHARS = 20
TOP_N = 10
SUSPICIOUS_LIMIT = 5


def _parse_record(entry: object) -> Optional[ExperienceRecord]:
    if not isinstance(entry, Mapping):
        return None
    try:
        return ExperienceRecord.model_validate(entry)
    except SchemaError:
        return None


def _top(counts: Counter, limit: int = TOP_N) -> List[Tuple[str, int]]:
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]


class QualityMaintenance:
    """Maintenance-window operations; each holds the store's write lock throughout."""

    def __init__(self, store: ExperienceStore, rules: Optional[ValidationRules] = None) -> None:
        self.store = store
        self.rules = rules or store.config.rules

    def run(self) -> MaintenanceReport:
        with self.store.exclusive():
            entries = self.store.raw_entries()
            kept: List[ExperienceRecord] = []
            seen: Set[str] = set()
            invalid = 0
            duplicates = 0
            for entry in entries:
                record = _parse_record(entry)
                if record is None or not validate_experience(entry, self.rules).accepted:
                    invalid += 1
                    continue
                signature = experience_signature(record)
                if signature in seen:
                    duplicates += 1
                    continue
                seen.add(signature)
                kept.append(record)

            backup = None
            if self.store.path.exists() or entries:
                backup = self.store.replace_all(kept)

        report = MaintenanceReport(
            processed=len(entries),
            kept=len(kept),
            removed_as_invalid=invalid,
            removed_as_duplicate=duplicates,
            by_category=dict(Counter(record.category for record in kept)),
            by_technology=dict(Counter(record.technology.name for record in kept)),
            backup_path=str(backup) if backup else None,
        )
        logger.info(
            "Maintenance pass on %s: processed=%d kept=%d invalid=%d duplicate=%d",
            self.store.path,
            report.processed,
            report.kept,
            report.removed_as_invalid,
            report.removed_as_duplicate,
        )
        return report

    def validate(self) -> ValidationSummary:
        entries = self.store.raw_entries()
        violations: List[str] = []
        by_category: Counter = Counter()
        by_technology: Counter = Counter()
        categories: Counter = Counter()
        invalid = 0
        for index, entry in enumerate(entries, start=1):
            data = entry if isinstance(entry, Mapping) else {}
            category = str(data.get("category") or "uncategorized")
            technology = (technology_name(data) or "unknown").lower()
            categories[category] += 1
            result = validate_experience(data, self.rules)
            if result.accepted:
                continue
            invalid += 1
            by_category[category] += 1
            by_technology[technology] += 1
            violations.extend(f"[{index}] {violation}" for violation in result.violations)
        return ValidationSummary(
            total=len(entries),
            invalid=invalid,
            violations=violations,
            violations_by_category=dict(by_category),
            violations_by_technology=dict(by_technology),
            category_counts=dict(categories),
        )

    def purge_test(self) -> PurgeReport:
        with self.store.exclusive():
            entries = self.store.raw_entries()
            kept: List[ExperienceRecord] = []
            test_data = 0
            unreadable = 0
            for entry in entries:
                if isinstance(entry, Mapping) and is_test_data(entry, self.rules):
                    test_data += 1
                    continue
                record = _parse_record(entry)
                if record is None:
                    unreadable += 1
                    continue
                kept.append(record)
            backup = None
            if self.store.path.exists() or entries:
                backup = self.store.replace_all(kept)
        logger.info(
            "Purged %d test entries (%d unreadable) from %s", test_data, unreadable, self.store.path
        )
        return PurgeReport(
            before=len(entries),
            after=len(kept),
            removed_test_data=test_data,
            removed_unreadable=unreadable,
            backup_path=str(backup) if backup else None,
        )

    def quality_report(self) -> QualityReport:
        entries = self.store.raw_entries()
        categories: Counter = Counter()
        technologies: Counter = Counter()
        contributors: Dict[str, int] = {}
        suspicious: List[str] = []
        parsed: List[ExperienceRecord] = []
        test_data = 0
        unknown_versions = 0
        short = 0
        for entry in entries:
            record = _parse_record(entry)
            if record is not None:
                parsed.append(record)
            data = entry if isinstance(entry, Mapping) else {}
            category = data.get("category")
            technology = technology_name(data)
            contributor = data.get("contributorId")
            if category:
                categories[str(category)] += 1
            if technology:
                technologies[technology] += 1
            if contributor:
                contributors[str(contributor)] = contributors.get(str(contributor), 0) + 1
            if is_test_data(data, self.rules):
                test_data += 1
                if len(suspicious) < SUSPICIOUS_LIMIT:
                    suspicious.append(f"Test data: {technology} ({category})")
            version = technology_version(data)
            if not version or version.lower() == "unknown":
                unknown_versions += 1
            if len(experience_content(data)) < SHORT_CONTENT_CHARS:
                short += 1

        total = len(entries)
        if total:
            pct = 100.0 * (total - test_data - unknown_versions - short) / total
            quality_pct = max(0.0, min(100.0, pct))
        else:
            quality_pct = 100.0
        return QualityReport(
            total=total,
            contributors=len(contributors),
            unique_categories=len(categories),
            unique_technologies=len(technologies),
            test_data_count=test_data,
            unknown_versions=unknown_versions,
            short_experiences=short,
            top_categories=_top(categories),
            top_technologies=_top(technologies),
            suspicious=suspicious,
            quality_pct=quality_pct,
            accountability=AccountabilityReporter(self.store, self.rules).build(parsed),
        )

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Dict, Iterable, List, TextIO, Tuple

from orchestrator.errors import ValidationError
from schemas.accountability_ir import AccountabilityReport
from schemas.maintenance_ir import MaintenanceReport, PurgeReport, QualityReport, ValidationSummary
from schemas.store_ir import LoadOutcome, StoreStats


def _format_counts(counts: Dict[str, int]) -> str:
    if not counts:
        return "none"
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    return ", ".join(f"{name}={count}" for name, count in ordered)


def _format_ranked(pairs: Iterable[Tuple[str, int]]) -> List[str]:
    return [f"{idx}. {name} ({count})" for idx, (name, count) in enumerate(pairs, start=1)]


@dataclass
class ConsoleUI:
    enabled: bool = True
    stream: TextIO = sys.stdout
    verbose: bool = False
    max_violations: int = 20

    def load(self, outcome: LoadOutcome) -> None:
        if not self.enabled:
            return
        if outcome.source in ("fresh", "primary") and not self.verbose:
            return
        self._section("Database")
        self._kv("source", outcome.source)
        self._kv("path", outcome.path)
        self._kv("records", str(outcome.record_count))
        if outcome.error:
            self._kv("error", outcome.error)

    def maintenance(self, report: MaintenanceReport) -> None:
        if not self.enabled:
            return
        self._section("Maintenance")
        self._kv("before", str(report.processed))
        self._kv("after", str(report.kept))
        self._kv("removed (invalid)", str(report.removed_as_invalid))
        self._kv("removed (duplicate)", str(report.removed_as_duplicate))
        self._kv("categories", _format_counts(report.by_category))
        self._kv("technologies", _format_counts(report.by_technology))
        if report.backup_path:
            self._kv("backup", report.backup_path)

    def validation(self, summary: ValidationSummary) -> None:
        if not self.enabled:
            return
        self._section("Validation")
        self._kv("experiences", str(summary.total))
        self._kv("invalid", str(summary.invalid))
        self._kv("categories", _format_counts(summary.category_counts))
        if not summary.invalid:
            self._print("All experiences pass the quality rules.")
            return
        self._kv("invalid by category", _format_counts(summary.violations_by_category))
        self._kv("invalid by technology", _format_counts(summary.violations_by_technology))
        shown = summary.violations if self.verbose else summary.violations[: self.max_violations]
        self._print("  violations:")
        for violation in shown:
            self._print(f"    {violation}")
        hidden = len(summary.violations) - len(shown)
        if hidden > 0:
            self._print(f"    ... {hidden} more (use --verbose)")

    def purge(self, report: PurgeReport) -> None:
        if not self.enabled:
            return
        self._section("Purge test data")
        self._kv("before", str(report.before))
        self._kv("after", str(report.after))
        self._kv("removed (test data)", str(report.removed_test_data))
        if report.removed_unreadable:
            self._kv("removed (unreadable)", str(report.removed_unreadable))
        if report.backup_path:
            self._kv("backup", report.backup_path)

    def quality(self, report: QualityReport) -> None:
        if not self.enabled:
            return
        self._section("Quality report")
        self._kv("experiences", str(report.total))
        self._kv("contributors", str(report.contributors))
        self._kv("unique categories", str(report.unique_categories))
        self._kv("unique technologies", str(report.unique_technologies))
        self._kv("test data", str(report.test_data_count))
        self._kv("unknown versions", str(report.unknown_versions))
        self._kv("short experiences", str(report.short_experiences))
        self._kv("quality", f"{report.quality_pct:.1f}%")
        if report.top_categories:
            self._print("  top categories:")
            for line in _format_ranked(report.top_categories):
                self._print(f"    {line}")
        if report.top_technologies:
            self._print("  top technologies:")
            for line in _format_ranked(report.top_technologies):
                self._print(f"    {line}")
        if report.suspicious:
            self._print("  suspicious:")
            for item in report.suspicious:
                self._print(f"    {item}")
        self.accountability(report.accountability)

    def accountability(self, report: AccountabilityReport) -> None:
        if not self.enabled:
            return
        self._section("Accountability")
        self._kv("records", str(report.total_records))
        for stats in report.contributors:
            self._print(
                f"  {stats.contributor_id} ({stats.model or 'n/a'}): "
                f"{stats.record_count} record(s), avg quality {stats.average_quality:.1f}, "
                f"accepted {stats.accepted_fraction * 100:.0f}%"
            )

    def stats(self, stats: StoreStats) -> None:
        if not self.enabled:
            return
        self._section("Statistics")
        self._kv("experiences", str(stats.count))
        self._kv("categories", _format_counts(stats.by_category))
        self._kv("contributors", _format_counts(stats.by_contributor))

    def recorded(self, record_id: str) -> None:
        if not self.enabled:
            return
        self._print(f"Recorded experience {record_id}")

    def rejected(self, error: ValidationError) -> None:
        # Rejections are shown even in quiet mode.
        self.stream.write(error.report() + "\n")
        if self.verbose and error.warnings:
            self.stream.write("Warnings:\n")
            for warning in error.warnings:
                self.stream.write(f"  - {warning}\n")
        self.stream.flush()

    def _section(self, title: str) -> None:
        self._print("")
        self._print(f"=== {title} ===")

    def _kv(self, key: str, value: str) -> None:
        self._print(f"- {key}: {value}")

    def _print(self, line: str) -> None:
        if not self.enabled:
            return
        self.stream.write(line + "\n")
        self.stream.flush()

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

from schemas.accountability_ir import AccountabilityReport, ContributorStats
from schemas.experience_ir import ExperienceRecord
from skills.experience_store import ExperienceStore
from skills.experience_validator import ValidationRules, validate_experience


@dataclass
class _Tally:
    model: str
    count: int = 0
    total_quality: float = 0.0
    accepted: int = 0


class AccountabilityReporter:
    """Per-contributor statistics over the current store contents.

    Quality is recomputed from each record's content with the current rules;
    the ``qualityScore`` stored at submission time is ignored so that drift
    after a rule change shows up here.
    """

    def __init__(self, store: ExperienceStore, rules: Optional[ValidationRules] = None) -> None:
        self.store = store
        self.rules = rules or store.config.rules

    def build(self, records: Optional[Sequence[ExperienceRecord]] = None) -> AccountabilityReport:
        """Report over ``records``, or over the store's loaded set when omitted."""
        if records is None:
            records = self.store.all()
        tallies: Dict[str, _Tally] = {}
        for record in records:
            result = validate_experience(record, self.rules)
            tally = tallies.setdefault(record.contributor_id, _Tally(model=record.model))
            tally.count += 1
            tally.total_quality += result.quality_score
            if result.accepted:
                tally.accepted += 1
        contributors = [
            ContributorStats(
                contributor_id=contributor_id,
                model=tally.model,
                record_count=tally.count,
                average_quality=tally.total_quality / tally.count,
                accepted_fraction=tally.accepted / tally.count,
            )
            for contributor_id, tally in tallies.items()
        ]
        contributors.sort(key=lambda stats: (-stats.record_count, stats.contributor_id))
        return AccountabilityReport(total_records=len(records), contributors=contributors)

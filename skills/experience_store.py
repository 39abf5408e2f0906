from __future__ import annotations

import contextlib
import json
import logging
import os
import shutil
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Protocol, Sequence, runtime_checkable

from pydantic import ValidationError as SchemaError

from orchestrator.errors import (
    CapacityExceededError,
    CorruptDatabaseError,
    PersistenceError,
    ValidationError,
)
from schemas.experience_ir import ExperienceRecord
from schemas.store_ir import SCHEMA_VERSION, LoadOutcome, StoreDocument, StoreStats
from skills.experience_factory import MAX_FIELD_CHARS, create_experience
from skills.experience_validator import ValidationRules, as_candidate

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "all"


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _safe_int(value: object, default: int) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


@runtime_checkable
class ExperienceListener(Protocol):
    def on_experience_recorded(self, record: ExperienceRecord) -> None: ...


@dataclass
class RepositoryConfig:
    path: Path = Path("experiences.json")
    max_records: int = 10_000
    max_field_chars: int = MAX_FIELD_CHARS
    max_file_bytes: int = 10_000_000
    max_backups: int = 5
    rules: ValidationRules = field(default_factory=ValidationRules)

    @classmethod
    def from_config(cls, cfg: Dict[str, object], default_path: Path) -> "RepositoryConfig":
        conf = cls(
            max_records=max(1, _safe_int(cfg.get("max_records"), 10_000)),
            max_field_chars=max(1, _safe_int(cfg.get("max_field_chars"), MAX_FIELD_CHARS)),
            max_file_bytes=max(1, _safe_int(cfg.get("max_file_bytes"), 10_000_000)),
            max_backups=max(1, _safe_int(cfg.get("max_backups"), 5)),
        )
        validation_cfg = cfg.get("validation")
        if isinstance(validation_cfg, dict):
            conf.rules = ValidationRules.from_config(validation_cfg)
        path_value = cfg.get("path")
        if isinstance(path_value, str) and path_value:
            conf.path = Path(path_value)
        else:
            conf.path = default_path
        return conf


class ExperienceStore:
    """Thread-safe, file-backed set of accepted experience records.

    The JSON file is loaded lazily on first access. Every write copies the
    current file to a timestamped backup, serializes the whole set to a
    temporary file and moves it over the real file in one ``os.replace``.
    """

    def __init__(self, config: RepositoryConfig, listeners: Iterable[object] = ()) -> None:
        self.config = config
        self.load_outcome: Optional[LoadOutcome] = None
        self._lock = threading.RLock()
        self._records: List[ExperienceRecord] = []
        self._loaded = False
        self._primary_trusted = True
        self._listeners: List[ExperienceListener] = []
        for listener in listeners:
            if not isinstance(listener, ExperienceListener):
                raise TypeError(
                    f"{type(listener).__name__} does not implement on_experience_recorded()"
                )
            self._listeners.append(listener)

    @classmethod
    def at(cls, path: Path, **overrides: object) -> "ExperienceStore":
        config = RepositoryConfig(path=Path(path))
        for key, value in overrides.items():
            if not hasattr(config, key):
                raise TypeError(f"Unknown repository option: {key}")
            setattr(config, key, value)
        return cls(config)

    @property
    def path(self) -> Path:
        return self.config.path

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record(self, candidate: object) -> str:
        """Validate and persist one submission, returning the new record id."""
        record, result = create_experience(candidate, self.config.rules, self.config.max_field_chars)
        if record is None:
            logger.warning(
                "Rejected experience from %s: %d violation(s)",
                as_candidate(candidate).get("contributorId") or "<unknown contributor>",
                len(result.violations),
            )
            raise ValidationError(result.violations, result.warnings, result.quality_score)

        with self._lock:
            self._ensure_loaded()
            if len(self._records) >= self.config.max_records:
                raise CapacityExceededError(self.config.max_records)
            self._records.append(record)
            try:
                self._persist(self._records)
            except OSError as exc:
                self._records.pop()
                raise PersistenceError(f"Failed to persist experience {record.id}: {exc}") from exc

        logger.info(
            "Recorded experience %s (%s / %s, quality %.1f)",
            record.id,
            record.category,
            record.technology.name,
            record.quality_score,
        )
        self._notify(record)
        return record.id

    def replace_all(self, records: Sequence[ExperienceRecord]) -> Optional[Path]:
        """Rewrite the whole store; used by maintenance passes. Returns the backup path."""
        with self._lock:
            self._ensure_loaded()
            previous = self._records
            self._records = list(records)
            try:
                return self._persist(self._records)
            except OSError as exc:
                self._records = previous
                raise PersistenceError(f"Failed to rewrite {self.path}: {exc}") from exc

    @contextlib.contextmanager
    def exclusive(self) -> Iterator["ExperienceStore"]:
        """Hold the write lock across several operations (maintenance window)."""
        with self._lock:
            yield self

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def search(self, category: str = ALL_CATEGORIES) -> List[ExperienceRecord]:
        records = self._snapshot()
        return [
            record.model_copy(deep=True)
            for record in records
            if category == ALL_CATEGORIES or record.category == category
        ]

    def search_by_tags(self, *tags: str) -> List[ExperienceRecord]:
        wanted = set(tags)
        if not wanted:
            return []
        records = self._snapshot()
        return [record.model_copy(deep=True) for record in records if wanted.intersection(record.tags)]

    def all(self) -> List[ExperienceRecord]:
        return [record.model_copy(deep=True) for record in self._snapshot()]

    def stats(self) -> StoreStats:
        records = self._snapshot()
        return StoreStats(
            count=len(records),
            by_category=dict(Counter(record.category for record in records)),
            by_contributor=dict(Counter(record.contributor_id for record in records)),
        )

    def raw_entries(self) -> List[object]:
        """Entries of the primary file as plain JSON, without structural parsing.

        Falls back to the loaded (possibly recovered) records when the file is
        missing or is not a JSON document with an ``experiences`` list.
        """
        with self._lock:
            self._ensure_loaded()
            path = self.path
            if path.exists():
                try:
                    if path.stat().st_size <= self.config.max_file_bytes:
                        raw = json.loads(path.read_text(encoding="utf-8"))
                        if isinstance(raw, dict) and isinstance(raw.get("experiences"), list):
                            return list(raw["experiences"])
                except (OSError, ValueError) as exc:
                    logger.warning("Cannot read raw entries from %s: %s", path, exc)
            return [record.to_payload() for record in self._records]

    def reload(self) -> LoadOutcome:
        """Drop the cache and re-read the file, e.g. after an out-of-band edit."""
        with self._lock:
            self._loaded = False
            return self._load()

    def backups(self) -> List[Path]:
        return sorted(self.path.parent.glob(f"{self.path.name}.backup.*"))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _snapshot(self) -> List[ExperienceRecord]:
        with self._lock:
            self._ensure_loaded()
            return list(self._records)

    def _notify(self, record: ExperienceRecord) -> None:
        for listener in self._listeners:
            try:
                listener.on_experience_recorded(record)
            except Exception:
                logger.exception(
                    "Experience listener %s failed for %s", type(listener).__name__, record.id
                )

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._load()

    def _load(self) -> LoadOutcome:
        path = self.path
        if not path.exists():
            self._records = []
            self._primary_trusted = True
            outcome = LoadOutcome(source="fresh", path=str(path))
            logger.info("No experience database at %s, starting empty", path)
        else:
            try:
                document = self._read_document(path)
            except CorruptDatabaseError as exc:
                logger.error("Experience database %s is corrupt: %s", path, exc)
                self._primary_trusted = False
                outcome = self._recover(str(exc))
            else:
                self._records = list(document.experiences)
                self._primary_trusted = True
                outcome = LoadOutcome(
                    source="primary", path=str(path), record_count=len(self._records)
                )
                logger.info("Loaded %d experiences from %s", len(self._records), path)
        self.load_outcome = outcome
        self._loaded = True
        return outcome

    def _read_document(self, path: Path) -> StoreDocument:
        try:
            size = path.stat().st_size
            if size > self.config.max_file_bytes:
                raise CorruptDatabaseError(
                    f"file too large: {size} bytes (max {self.config.max_file_bytes})"
                )
            if size == 0:
                raise CorruptDatabaseError("file is empty")
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise CorruptDatabaseError(f"unreadable: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise CorruptDatabaseError(f"not valid UTF-8: {exc}") from exc
        try:
            document = StoreDocument.model_validate_json(raw)
        except SchemaError as exc:
            first = exc.errors()[0].get("msg", "invalid document") if exc.errors() else "invalid document"
            raise CorruptDatabaseError(f"{exc.error_count()} schema error(s), first: {first}") from exc
        if document.version != SCHEMA_VERSION:
            logger.warning(
                "%s has schema version %s, expected %s; loading as-is",
                path,
                document.version,
                SCHEMA_VERSION,
            )
        return document

    def _recover(self, error: str) -> LoadOutcome:
        backups = self.backups()
        if backups:
            latest = backups[-1]
            try:
                document = self._read_document(latest)
            except CorruptDatabaseError as exc:
                logger.error("Latest backup %s is also unusable: %s", latest, exc)
            else:
                self._records = list(document.experiences)
                logger.warning("Recovered %d experiences from %s", len(self._records), latest)
                return LoadOutcome(
                    source="backup",
                    path=str(latest),
                    record_count=len(self._records),
                    error=error,
                )
        self._records = []
        logger.warning("No usable backup for %s, starting with an empty store", self.path)
        return LoadOutcome(source="empty", path=str(self.path), error=error)

    def _side_path(self, kind: str) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        candidate = self.path.with_name(f"{self.path.name}.{kind}.{stamp}")
        suffix = 1
        while candidate.exists():
            candidate = self.path.with_name(f"{self.path.name}.{kind}.{stamp}-{suffix}")
            suffix += 1
        return candidate

    def _persist(self, records: Sequence[ExperienceRecord]) -> Optional[Path]:
        path = self.path
        path.parent.mkdir(parents=True, exist_ok=True)
        backup: Optional[Path] = None
        if path.exists():
            if self._primary_trusted:
                backup = self._side_path("backup")
                shutil.copy2(path, backup)
            else:
                quarantine = self._side_path("corrupt")
                shutil.copy2(path, quarantine)
                logger.warning("Kept corrupt database as %s", quarantine)

        document = StoreDocument.from_records(records, _iso_now())
        payload = document.model_dump_json(by_alias=True, indent=2)
        tmp = path.with_name(path.name + ".tmp")
        try:
            with tmp.open("w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp, path)
        except OSError:
            with contextlib.suppress(OSError):
                tmp.unlink()
            raise
        self._primary_trusted = True
        self._prune_backups()
        logger.debug("Wrote %d experiences to %s", len(records), path)
        return backup

    def _prune_backups(self) -> None:
        stale = self.backups()[: -self.config.max_backups]
        for old in stale:
            try:
                old.unlink()
            except OSError as exc:
                logger.warning("Could not remove old backup %s: %s", old, exc)

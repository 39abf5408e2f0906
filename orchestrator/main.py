from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from orchestrator.console import ConsoleUI
from orchestrator.errors import ExperienceRepositoryError, ValidationError
from skills.experience_store import ExperienceStore, RepositoryConfig
from skills.quality_maintenance import QualityMaintenance

DEFAULT_DB = Path("experiences.json")


def _deep_merge_dicts(base: dict, overlay: dict) -> dict:
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise SystemExit(f"{path} must contain a mapping")
    return raw


def load_repository_cfg(config_dir: Path) -> dict:
    # Base config (tracked), then machine-local overrides (untracked).
    cfg = _load_yaml(config_dir / "repository.yaml")
    local_cfg = _load_yaml(config_dir / "repository.local.yaml")
    if local_cfg:
        cfg = _deep_merge_dicts(cfg, local_cfg)
    return cfg


def _read_candidate(path: Path) -> dict:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise SystemExit(f"Cannot read {path}: {exc}") from exc
    except ValueError as exc:
        raise SystemExit(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise SystemExit(f"{path} must contain a JSON object")
    return payload


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Shared experience repository maintenance")
    parser.add_argument("--config-dir", default="configs", help="Config directory")
    parser.add_argument("--db", default=None, help="Override the experience database path")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level for repository diagnostics",
    )
    parser.add_argument(
        "--ui",
        default="console",
        choices=["console", "quiet"],
        help="Console output mode",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show every violation and the load source",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("validate", help="Report violations without modifying the database")
    sub.add_parser("clean", help="Re-validate, deduplicate and rewrite the database")
    sub.add_parser("purge-test", help="Remove entries with test/placeholder technologies or categories")
    sub.add_parser("report", help="Print the quality and accountability report")
    sub.add_parser("stats", help="Print record counts by category and contributor")
    record = sub.add_parser("record", help="Submit one experience from a JSON file")
    record.add_argument("--file", required=True, help="Path to a JSON experience candidate")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        _run(args)
    except ExperienceRepositoryError as exc:
        raise SystemExit(f"Experience repository error: {exc}") from exc


def _run(args: argparse.Namespace) -> None:
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config_dir = Path(args.config_dir)
    cfg = load_repository_cfg(config_dir)
    config = RepositoryConfig.from_config(cfg, DEFAULT_DB)
    if args.db:
        config.path = Path(args.db)

    ui = ConsoleUI(enabled=args.ui == "console", stream=sys.stdout, verbose=bool(args.verbose))
    store = ExperienceStore(config)
    ui.load(store.reload())
    maintenance = QualityMaintenance(store)

    if args.command == "record":
        candidate = _read_candidate(Path(args.file))
        try:
            record_id = store.record(candidate)
        except ValidationError as exc:
            ui.rejected(exc)
            raise SystemExit(1) from exc
        ui.recorded(record_id)
        return

    if args.command == "validate":
        summary = maintenance.validate()
        ui.validation(summary)
        if summary.invalid:
            raise SystemExit(1)
    elif args.command == "clean":
        ui.maintenance(maintenance.run())
    elif args.command == "purge-test":
        ui.purge(maintenance.purge_test())
    elif args.command == "report":
        ui.quality(maintenance.quality_report())
    elif args.command == "stats":
        ui.stats(store.stats())


if __name__ == "__main__":
    main()

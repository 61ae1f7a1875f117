"""
Roster Watch - CLI Runner

Usage:
  python -m rwatch.run \
    --targets config/targets.example.yaml \
    --config config/example.yaml \
    --out ./out

Dry run (validate only):
  python -m rwatch.run --targets targets.yaml --config config/example.yaml --out ./out --dry-run

Exit codes:
  0 - success
  1 - config error (file missing or invalid YAML)
  2 - input error (targets file missing/invalid, unknown --target id)
  3 - processing error (every target failed or output not writable)
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from roster.config import load_settings, load_targets
from roster.db import InMemoryStore
from roster.errors import ConfigError, PersistenceError
from roster.ops_logger import OpsLogger
from roster.pipeline.export import RunReportExporter
from roster.schemas import RunStatus, Target
from roster.service import build_service, run_batch


def ensure_out_dir(out_dir: Path) -> bool:
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        # sanity check: can we write here?
        test_file = out_dir / ".write_test"
        test_file.write_text("ok", encoding="utf-8")
        test_file.unlink(missing_ok=True)
    except OSError as e:
        print(f"Output error: cannot write to {out_dir}: {e}", file=sys.stderr)
        return False
    return True


def select_targets(targets: List[Target], wanted: Optional[List[str]]) -> List[Target]:
    if not wanted:
        return targets
    by_id = {t.id: t for t in targets}
    missing = [w for w in wanted if w not in by_id]
    if missing:
        raise KeyError(", ".join(missing))
    return [by_id[w] for w in wanted]


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="rwatch.run", description="Roster Watch extraction runner")
    parser.add_argument("--targets", "-t", required=True, help="Path to YAML targets file")
    parser.add_argument("--config", "-c", default=None, help="Path to YAML config file (defaults apply when omitted)")
    parser.add_argument("--out", "-o", default="out", help="Output directory for reports and ops log (default: ./out)")
    parser.add_argument("--db", default=None, help="SQLite DB path (overrides storage.db_path)")
    parser.add_argument("--target", action="append", default=None, metavar="ID", help="Run only this target id (repeatable)")
    parser.add_argument("--no-headless", action="store_true", help="Disable browser escalation (static-only)")
    parser.add_argument("--dry-run", action="store_true", help="Validate config/targets and exit")
    parser.add_argument("--ops-log", default=None, help="Path to ops JSONL log file (default: <out>/ops.log)")
    parser.add_argument("--ops-stdout", action="store_true", help="Also mirror ops JSON to stdout")
    args = parser.parse_args(argv)

    try:
        settings = load_settings(Path(args.config)) if args.config else load_settings(None)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1

    try:
        targets = select_targets(load_targets(Path(args.targets)), args.target)
    except ConfigError as e:
        print(f"Input error: {e}", file=sys.stderr)
        return 2
    except KeyError as e:
        print(f"Input error: unknown target id(s): {e.args[0]}", file=sys.stderr)
        return 2

    if args.no_headless:
        settings.acquisition.enable_dynamic = False
    if args.db:
        settings.storage.db_path = args.db

    out_dir = Path(args.out)
    if args.dry_run:
        invalid = [t.id for t in targets if not t.is_valid()]
        print("✅ Dry-run validation passed")
        print(f" - Targets file: {args.targets}")
        print(f" - Config: {args.config or '(defaults)'}")
        print(f" - Output dir: {out_dir}")
        print(f" - Targets to process: {len(targets)}")
        if invalid:
            print(f" - Invalid targets (will be rejected): {', '.join(invalid)}")
        print(f" - Dynamic escalation: {'on' if settings.acquisition.enable_dynamic else 'off'}")
        return 0

    if not ensure_out_dir(out_dir):
        return 3

    try:
        service = build_service(settings)
    except PersistenceError as e:
        print(f"Storage error: {e}", file=sys.stderr)
        return 3

    ops_logger = None
    if settings.ops.ops_json or args.ops_log or args.ops_stdout:
        ops_path = Path(args.ops_log or settings.ops.log_path or (out_dir / "ops.log"))
        ops_logger = OpsLogger(ops_path, also_stdout=bool(args.ops_stdout or settings.ops.stdout))

    store_desc = settings.storage.db_path if not isinstance(service.store, InMemoryStore) else "in-memory"
    print(f"Roster run: {len(targets)} targets, store={store_desc}, "
          f"dynamic={'on' if settings.acquisition.enable_dynamic else 'off'}")

    try:
        results = run_batch(
            service,
            targets,
            delay_s=settings.acquisition.inter_target_delay_s,
            ops_logger=ops_logger,
        )
    finally:
        service.close()

    try:
        exporter = RunReportExporter(output_dir=out_dir)
        json_path = exporter.to_json(results)
        csv_path = exporter.changes_to_csv(results)
        print(f"💾 JSON: {json_path}")
        print(f"💾 Changes CSV: {csv_path}")
    except OSError as e:
        print(f"Export error: {e}", file=sys.stderr)
        return 3

    ok = sum(1 for r in results if r.status == RunStatus.SUCCESS)
    print("🏁 Done.")
    print(f"   Targets: {len(results)} (success={ok}, failed/rejected={len(results) - ok})")
    print(f"   Changes: {sum(len(r.change_events) for r in results)}")

    if results and ok == 0:
        print("No target completed successfully.", file=sys.stderr)
        return 3
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())

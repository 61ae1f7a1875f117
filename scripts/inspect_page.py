#!/usr/bin/env python3
"""
Manual inspection tool for Roster Watch

Acquires the roster of a single team page (static first, browser escalation
when weak) and prints the deduplicated records, without touching any store.
With --html, runs the extraction engine on a saved HTML artifact instead.

Usage:
    python3 scripts/inspect_page.py "https://example.com/team"
    python3 scripts/inspect_page.py "https://example.com/team" --static-only --export roster.json
    python3 scripts/inspect_page.py "https://example.com/team" --html artifacts/acme/20250101T120000_dynamic.html
"""

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from roster.config import Settings, load_settings  # noqa: E402
from roster.pipeline.dedupe import dedupe  # noqa: E402
from roster.pipeline.enrich import enrich_records  # noqa: E402
from roster.pipeline.extractors import ExtractionEngine  # noqa: E402
from roster.pipeline.orchestrator import AcquisitionOrchestrator  # noqa: E402
from roster.schemas import ExtractionMethod, Target  # noqa: E402


def print_header(title):
    print(f"\n{'='*60}")
    print(f" {title}")
    print(f"{'='*60}")


def print_section(title):
    print(f"\n{'-'*40}")
    print(f" {title}")
    print(f"{'-'*40}")


def format_record(record, index):
    print(f"\n👤 #{index + 1} {record.name}  [{record.source}]")
    for field in ("title", "seniority", "department", "location", "email", "phone",
                  "linkedin_url", "profile_url", "image_url"):
        value = getattr(record, field)
        if value:
            print(f"   {field}: {value}")


def main():
    parser = argparse.ArgumentParser(
        description="Inspect roster extraction for a single team page",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("url", help="Team page URL (also the base URL for --html)")
    parser.add_argument("--config", "-c", default=None, help="YAML config file")
    parser.add_argument("--html", default=None, help="Extract from a saved HTML file instead of fetching")
    parser.add_argument("--static-only", action="store_true", help="Disable browser escalation")
    parser.add_argument("--export", "-e", help="Export records to a JSON file")
    args = parser.parse_args()

    print_header("Roster Watch - Page Inspection")
    print(f"URL: {args.url}")
    print(f"Timestamp: {datetime.now().isoformat()}")

    settings = load_settings(Path(args.config)) if args.config else Settings()
    if args.static_only:
        settings.acquisition.enable_dynamic = False

    if args.html:
        html = Path(args.html).read_text(encoding="utf-8")
        records = ExtractionEngine().extract(html, args.url)
        snapshot = dedupe(enrich_records(records), target_id="inspect", method=ExtractionMethod.STATIC)
        print(f"Raw candidates: {len(records)}")
    else:
        orchestrator = AcquisitionOrchestrator(settings)
        try:
            result = orchestrator.run(Target(id="inspect", display_name="inspect", team_page_url=args.url))
        finally:
            orchestrator.close()
        print_section("Acquisition")
        for attempt in result.attempts:
            status = "✅" if attempt.status.value == "success" else "❌"
            print(f"{status} {attempt.method.value}: {attempt.record_count} records in {attempt.duration_ms}ms"
                  + (f" — {attempt.error_message}" if attempt.error_message else ""))
        if result.escalation_reasons:
            print(f"🔄 Escalation reasons: {', '.join(result.escalation_reasons)}")
        if not result.ok:
            print(f"❌ Failed: {result.error}")
            sys.exit(1)
        snapshot = result.snapshot

    print_section(f"Records ({len(snapshot)}, method={snapshot.method.value})")
    for i, record in enumerate(snapshot.records):
        format_record(record, i)

    if args.export:
        with open(args.export, "w", encoding="utf-8") as f:
            json.dump(snapshot.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
        print(f"\n💾 Results exported to: {args.export}")


if __name__ == "__main__":
    main()

"""
Run Report Export - JSON/CSV output of a batch run

- JSON: one entry per target with status, snapshot, change events, attempts, errors
- CSV: flat list of change events (one row per event, changed fields as JSON)
"""

import csv
import json
from datetime import datetime as dt
from pathlib import Path
from typing import List, Optional, Union

from ..schemas import RunResult


CHANGE_CSV_FIELDS = [
    "target_id",
    "change_type",
    "member_name",
    "member_id",
    "detected_at",
    "previous_data",
    "new_data",
]


class RunReportExporter:
    """
    Writes RunResults produced by a batch to an output directory.
    """

    def __init__(self, output_dir: Union[str, Path] = "output"):
        """
        Args:
            output_dir: Directory for output files (created if doesn't exist)
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _default_name(self, stem: str, suffix: str) -> str:
        timestamp = dt.now().strftime("%Y%m%d_%H%M%S")
        return f"{stem}_{timestamp}.{suffix}"

    def to_json(self, results: List[RunResult], filename: Optional[str] = None) -> Path:
        json_path = self.output_dir / (filename or self._default_name("run", "json"))
        payload = {
            "generated_at": dt.now().astimezone().isoformat(),
            "targets": len(results),
            "results": [r.model_dump(mode="json") for r in results],
        }
        with open(json_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        return json_path

    def changes_to_csv(self, results: List[RunResult], filename: Optional[str] = None) -> Path:
        csv_path = self.output_dir / (filename or self._default_name("changes", "csv"))
        with open(csv_path, "w", newline="", encoding="utf-8") as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=CHANGE_CSV_FIELDS)
            writer.writeheader()
            for r in results:
                for e in r.change_events:
                    writer.writerow({
                        "target_id": e.target_id,
                        "change_type": e.change_type.value,
                        "member_name": e.member_name,
                        "member_id": e.member_id or "",
                        "detected_at": e.detected_at.isoformat(),
                        "previous_data": json.dumps(e.previous_data, ensure_ascii=False) if e.previous_data else "",
                        "new_data": json.dumps(e.new_data, ensure_ascii=False) if e.new_data else "",
                    })
        return csv_path

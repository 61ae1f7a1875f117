"""
Ops log - one JSON line per processed target plus a closing batch summary.

Every line carries ``"rw_ops": 1`` so it can be grepped out of mixed output
(stdout mirror, CI logs). Writing is best-effort: a broken log never fails a
roster run.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Dict, Iterable

from .schemas import RunResult, RunStatus

OPS_MARKER = "rw_ops"


def target_record(target_id: str, status: str, **fields: Any) -> Dict[str, Any]:
    """Per-target line: marker, target id and status first, then any extra fields."""
    record: Dict[str, Any] = {OPS_MARKER: 1, "target_id": target_id, "status": status}
    record.update(fields)
    return record


def summary_record(results: Iterable[RunResult], *, wall_s: float) -> Dict[str, Any]:
    results = list(results)
    return {
        OPS_MARKER: 1,
        "summary": True,
        "targets": len(results),
        "by_status": {s.value: sum(1 for r in results if r.status == s) for s in RunStatus},
        "total_changes": sum(len(r.change_events) for r in results),
        "people": sum(len(r.snapshot) for r in results if r.snapshot is not None),
        "durations": {"wall_s": round(max(0.0, wall_s), 2)},
    }


class OpsLogger:
    """Append-only JSONL sink for target and summary records (thread-safe)."""

    def __init__(self, file_path: Path, also_stdout: bool = False) -> None:
        self.file_path = Path(file_path)
        self.also_stdout = bool(also_stdout)
        self.emitted = 0
        self._lock = threading.Lock()
        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            pass

    def emit(self, record: Dict[str, Any]) -> bool:
        """Append one record; returns False when nothing reached the file."""
        record = dict(record)
        record.setdefault(OPS_MARKER, 1)
        try:
            # datetimes and enums fall back to str()
            line = json.dumps(record, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            line = json.dumps({
                OPS_MARKER: 1,
                "target_id": str(record.get("target_id", "")),
                "_serialization_error": True,
            })
        written = False
        try:
            with self._lock:
                with self.file_path.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
                self.emitted += 1
            written = True
        except OSError as e:
            print(f"ops log write failed (non-fatal): {e}")
        if self.also_stdout:
            print(line)
        return written

    def emit_target(self, target_id: str, status: str, **fields: Any) -> bool:
        return self.emit(target_record(target_id, status, **fields))

    def emit_summary(self, results: Iterable[RunResult], *, wall_s: float) -> bool:
        return self.emit(summary_record(results, wall_s=wall_s))

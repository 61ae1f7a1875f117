"""
Roster Service - the runExtraction operation and the sequential batch runner

run_extraction(target):
  validate target -> acquire (static/dynamic) -> load active roster -> diff -> persist

A failed acquisition writes its attempts and nothing else: no diff, no events.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from .artifacts import FilesystemArtifactStore
from .config import Settings
from .db import InMemoryStore, RosterStore, SQLiteStore
from .errors import InvalidTarget, PersistenceError
from .ops_logger import OpsLogger
from .pipeline.differ import diff
from .pipeline.orchestrator import AcquisitionOrchestrator
from .schemas import RunResult, RunStatus, Target, target_url_problem


class RosterService:
    def __init__(self, store: RosterStore, orchestrator: AcquisitionOrchestrator) -> None:
        self.store = store
        self.orchestrator = orchestrator
        self.last_ops_record: Optional[Dict[str, Any]] = None

    def close(self) -> None:
        self.orchestrator.close()
        try:
            self.store.close()
        except PersistenceError:
            pass

    def run_extraction(self, target: Target) -> RunResult:
        """Acquire, reconcile and persist one target's roster.

        Raises InvalidTarget before any attempt for a malformed descriptor.
        Persistence failures of individual writes are collected in ``errors``.
        """
        self.last_ops_record = None
        problem = target_url_problem(target)
        if problem:
            raise InvalidTarget(problem)

        acquisition = self.orchestrator.run(target)
        errors: List[str] = []

        def _persist(what: str, fn: Callable[[], None]) -> None:
            try:
                fn()
            except PersistenceError as e:
                print(f"  ⚠️  persistence error ({what}): {e}")
                errors.append(f"{what}: {e}")

        for attempt in acquisition.attempts:
            _persist(f"attempt {attempt.method.value}", lambda a=attempt: self.store.append_extraction_attempt(a))

        self.last_ops_record = dict(self.orchestrator.last_ops_record or {})

        if not acquisition.ok:
            errors.insert(0, acquisition.error or "acquisition failed")
            return RunResult(
                target_id=target.id,
                status=RunStatus.FAILED,
                attempts=acquisition.attempts,
                errors=errors,
            )

        snapshot = acquisition.snapshot
        try:
            previous = self.store.get_active_roster(target.id)
        except PersistenceError as e:
            errors.insert(0, f"load active roster: {e}")
            return RunResult(
                target_id=target.id,
                status=RunStatus.FAILED,
                snapshot=snapshot,
                attempts=acquisition.attempts,
                errors=errors,
            )

        result = diff(target.id, previous, snapshot)
        # deactivate first so a surviving duplicate can keep the active slot
        for member in result.deactivated:
            _persist(f"deactivate {member.id}", lambda m=member: self.store.deactivate_member(m.id))
        for member in result.upserts:
            _persist(f"upsert {member.id}", lambda m=member: self.store.upsert_member(m))
        for event in result.events:
            _persist(f"event {event.id}", lambda e=event: self.store.append_change_event(e))

        if self.last_ops_record:
            self.last_ops_record["changes"] = result.counts()
            self.last_ops_record["persistence_errors"] = len(errors)

        return RunResult(
            target_id=target.id,
            status=RunStatus.SUCCESS,
            snapshot=snapshot,
            change_events=result.events,
            attempts=acquisition.attempts,
            errors=errors,
        )


def build_service(settings: Optional[Settings] = None, *, store: Optional[RosterStore] = None,
                  orchestrator: Optional[AcquisitionOrchestrator] = None) -> RosterService:
    """Wire a RosterService from settings (SQLite when storage.db_path is set, else in-memory)."""
    settings = settings or Settings()
    if store is None:
        store = SQLiteStore(settings.storage.db_path) if settings.storage.db_path else InMemoryStore()
    if orchestrator is None:
        artifacts = None
        if settings.storage.artifacts_dir:
            artifacts = FilesystemArtifactStore(settings.storage.artifacts_dir)
        orchestrator = AcquisitionOrchestrator(settings, artifact_store=artifacts)
    return RosterService(store, orchestrator)


def run_extraction(target: Target, service: Optional[RosterService] = None) -> RunResult:
    if service is None:
        service = build_service()
    return service.run_extraction(target)


def run_batch(
    service: RosterService,
    targets: Iterable[Target],
    *,
    delay_s: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
    ops_logger: Optional[OpsLogger] = None,
) -> List[RunResult]:
    """Run targets one after another; a failing target never stops the batch."""
    results: List[RunResult] = []
    proc_start = time.perf_counter()
    for i, target in enumerate(targets):
        if i > 0 and delay_s > 0:
            sleep(delay_s)
        tid = str(getattr(target, "id", "") or f"#{i}")
        print(f"➡️  Processing: {tid} {getattr(target, 'team_page_url', '')}")
        try:
            result = service.run_extraction(target)
        except InvalidTarget as e:
            print(f"  ⚠️  Rejected: {tid} — {e}")
            result = RunResult(target_id=tid, status=RunStatus.REJECTED, errors=[str(e)])
        except Exception as e:
            result = RunResult(target_id=tid, status=RunStatus.FAILED, errors=[f"{type(e).__name__}: {e}"])

        if result.status == RunStatus.SUCCESS:
            n = len(result.snapshot) if result.snapshot else 0
            print(f"  ✅ {n} people, {len(result.change_events)} changes")
        elif result.status == RunStatus.FAILED:
            print(f"  ⚠️  Skipped: {tid} — {result.errors[0] if result.errors else 'unknown error'}")

        if ops_logger:
            record = service.last_ops_record if result.status != RunStatus.REJECTED else None
            if record:
                ops_logger.emit(record)
            else:
                ops_logger.emit_target(tid, result.status.value)
        results.append(result)

    if ops_logger:
        ops_logger.emit_summary(results, wall_s=time.perf_counter() - proc_start)
    return results

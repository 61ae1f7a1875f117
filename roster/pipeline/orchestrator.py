"""
Acquisition Orchestrator - static-first roster acquisition with browser escalation

NotStarted -> StaticAttempted -> (DynamicAttempted)? -> Done | Failed

Never raises for acquisition failures: every attempt is recorded as an
ExtractionAttempt and the outcome is carried in AcquisitionResult.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..artifacts import ArtifactStore
from ..config import Settings
from ..errors import ExtractionEmpty, RenderTimeout
from ..ops_logger import target_record
from ..schemas import (
    AcquisitionResult,
    AcquisitionStatus,
    AttemptStatus,
    ExtractionAttempt,
    ExtractionMethod,
    PersonRecord,
    RosterSnapshot,
    Target,
    utcnow,
)
from .dedupe import dedupe
from .enrich import enrich_records
from .escalation import decide_escalation
from .extractors import ExtractionEngine
from .fetchers.playwright import BrowserSession, DynamicContentDriver, RenderResult
from .fetchers.static import StaticFetcher
from .normalize import normalize_name


def _describe(e: BaseException) -> str:
    return f"{type(e).__name__}: {e}"


class AcquisitionOrchestrator:
    """Static fetch first; escalate to the Dynamic Content Driver when the static result is weak."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        static_fetcher: Optional[StaticFetcher] = None,
        driver: Optional[DynamicContentDriver] = None,
        engine: Optional[ExtractionEngine] = None,
        artifact_store: Optional[ArtifactStore] = None,
        session_factory: Optional[Callable[[], BrowserSession]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or Settings()
        acq = self.settings.acquisition
        if static_fetcher is None:
            self.static_fetcher = StaticFetcher(
                timeout_s=acq.static_timeout_s,
                user_agent=acq.user_agent,
                respect_robots=acq.respect_robots,
            )
        else:
            self.static_fetcher = static_fetcher
        self.driver = driver or DynamicContentDriver(self.settings.driver, clock=clock)
        self.engine = engine or ExtractionEngine()
        self.artifact_store = artifact_store
        self.session_factory = session_factory or (lambda: BrowserSession(self.settings.driver))
        self._clock = clock
        self.last_ops_record: Optional[Dict[str, Any]] = None

    def close(self) -> None:
        try:
            self.static_fetcher.close()
        except Exception:
            pass

    # --- helpers
    def _elapsed_ms(self, t0: float) -> int:
        return max(0, int(round((self._clock() - t0) * 1000)))

    def _store_text(self, target_id: str, ts: datetime, kind: str, text: Optional[str]) -> List[str]:
        if self.artifact_store is None or text is None:
            return []
        try:
            return [str(self.artifact_store.write_text(target_id, ts, kind, text))]
        except OSError as e:
            print(f"  artifact write failed ({kind}): {e}")
            return []

    def _snapshot(self, records: List[PersonRecord], target: Target, method: ExtractionMethod,
                  ts: datetime) -> RosterSnapshot:
        return dedupe(enrich_records(records), target_id=target.id, method=method, captured_at=ts)

    def records_from_render(self, render: RenderResult) -> List[PersonRecord]:
        """Final HTML + every harvested state HTML + name-only records for harvested names."""
        records = self.engine.extract(render.final_html, render.url)
        for html in render.state_html:
            records.extend(self.engine.extract(html, render.url))
        present = {normalize_name(r.name) for r in records}
        for i, name in enumerate(render.harvested_names):
            nn = normalize_name(name)
            if nn and nn not in present:
                present.add(nn)
                records.append(PersonRecord(name=name, order_index=i, source="harvest"))
        return records

    # --- attempts
    def _static_attempt(self, target: Target, ts: datetime
                        ) -> Tuple[Optional[RosterSnapshot], Optional[Exception], Optional[str], ExtractionAttempt]:
        t0 = self._clock()
        html: Optional[str] = None
        refs: List[str] = []
        try:
            fetch = self.static_fetcher.fetch(target.team_page_url)
            html = fetch.html
            refs = self._store_text(target.id, ts, "static", html)
            records = self.engine.extract(html, fetch.url)
            snapshot = self._snapshot(records, target, ExtractionMethod.STATIC, ts)
        except Exception as e:
            attempt = ExtractionAttempt(
                target_id=target.id, method=ExtractionMethod.STATIC, status=AttemptStatus.ERROR,
                duration_ms=self._elapsed_ms(t0), error_message=_describe(e),
                artifact_refs=refs, started_at=ts,
            )
            return None, e, html, attempt
        attempt = ExtractionAttempt(
            target_id=target.id, method=ExtractionMethod.STATIC, status=AttemptStatus.SUCCESS,
            record_count=len(snapshot), duration_ms=self._elapsed_ms(t0),
            artifact_refs=refs, started_at=ts,
        )
        return snapshot, None, html, attempt

    def _dynamic_attempt(self, target: Target, ts: datetime, deadline: float
                         ) -> Tuple[Optional[RosterSnapshot], ExtractionAttempt, Optional[RenderResult]]:
        t0 = self._clock()
        refs: List[str] = []
        render: Optional[RenderResult] = None
        try:
            if self._clock() >= deadline:
                raise RenderTimeout("target budget exhausted before dynamic attempt", step="budget")
            shot = None
            if self.artifact_store is not None:
                try:
                    shot = self.artifact_store.path_for(target.id, ts, "screenshot", "png")
                except OSError:
                    shot = None
            with self.session_factory() as session:
                render = self.driver.render(
                    target.team_page_url, session=session, deadline=deadline, screenshot_path=shot,
                )
            refs = self._store_text(target.id, ts, "dynamic", render.final_html)
            if render.screenshot_path:
                refs.append(render.screenshot_path)
            snapshot = self._snapshot(self.records_from_render(render), target, ExtractionMethod.DYNAMIC, ts)
        except Exception as e:
            attempt = ExtractionAttempt(
                target_id=target.id, method=ExtractionMethod.DYNAMIC, status=AttemptStatus.ERROR,
                duration_ms=self._elapsed_ms(t0), error_message=_describe(e),
                artifact_refs=refs, started_at=ts,
            )
            return None, attempt, render
        attempt = ExtractionAttempt(
            target_id=target.id, method=ExtractionMethod.DYNAMIC, status=AttemptStatus.SUCCESS,
            record_count=len(snapshot), duration_ms=self._elapsed_ms(t0),
            artifact_refs=refs, started_at=ts,
        )
        return snapshot, attempt, render

    def run(self, target: Target) -> AcquisitionResult:
        acq = self.settings.acquisition
        t_start = self._clock()
        deadline = t_start + acq.target_budget_s
        ts = utcnow()
        attempts: List[ExtractionAttempt] = []
        self.last_ops_record = None

        static_snapshot, static_error, static_html, static_attempt = self._static_attempt(target, ts)
        attempts.append(static_attempt)

        decision = decide_escalation(
            len(static_snapshot) if static_snapshot is not None else 0,
            error=static_error,
            html=static_html,
            threshold=acq.confidence_threshold,
            enable_dynamic=acq.enable_dynamic,
        )

        dynamic_snapshot: Optional[RosterSnapshot] = None
        render: Optional[RenderResult] = None
        if decision.escalate:
            print(f"  via playwright: reasons={decision.reasons}")
            dynamic_snapshot, dynamic_attempt, render = self._dynamic_attempt(target, ts, deadline)
            attempts.append(dynamic_attempt)

        candidates = [s for s in (static_snapshot, dynamic_snapshot) if s is not None and len(s) > 0]
        if candidates:
            # larger roster wins; dynamic wins ties
            best = max(candidates, key=lambda s: (len(s), s.method == ExtractionMethod.DYNAMIC))
            result = AcquisitionResult(
                target_id=target.id, status=AcquisitionStatus.DONE, snapshot=best,
                attempts=attempts, escalation_reasons=list(decision.reasons),
            )
        else:
            errors = [a.error_message for a in attempts if a.error_message]
            message = "; ".join(errors) if errors else _describe(
                ExtractionEmpty(f"no people found on {target.team_page_url}")
            )
            result = AcquisitionResult(
                target_id=target.id, status=AcquisitionStatus.FAILED, attempts=attempts,
                error=message, escalation_reasons=list(decision.reasons),
            )

        self.last_ops_record = target_record(
            target.id,
            result.status.value,
            url=target.team_page_url,
            method=result.snapshot.method.value if result.snapshot else None,
            durations={
                "static_ms": attempts[0].duration_ms,
                "dynamic_ms": attempts[1].duration_ms if len(attempts) > 1 else 0,
                "total_s": round(max(0.0, self._clock() - t_start), 4),
            },
            counts={
                "static": len(static_snapshot) if static_snapshot is not None else 0,
                "dynamic": len(dynamic_snapshot) if dynamic_snapshot is not None else 0,
                "records": len(result.snapshot) if result.snapshot else 0,
                "controls": render.controls_activated if render else 0,
                "timed_out_controls": render.timed_out_controls if render else 0,
            },
            escalate=bool(decision.escalate),
            reasons=list(decision.reasons),
        )
        return result

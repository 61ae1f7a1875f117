from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from ..schemas import (
    PERSON_ATTRIBUTES,
    ExtractionMethod,
    PersonRecord,
    RosterSnapshot,
    utcnow,
)
from .extractors import STRATEGY_PRIORITY
from .normalize import (
    EMAIL_KEY_PREFIX,
    LINKEDIN_KEY_PREFIX,
    is_name_key,
    normalize,
    normalize_name,
)


def _priority(rec: PersonRecord) -> int:
    return STRATEGY_PRIORITY.get(rec.source or "", len(STRATEGY_PRIORITY))


def merge_records(records: List[PersonRecord]) -> PersonRecord:
    """Merge records of one identity: first non-empty value wins in strategy priority order."""
    if not records:
        raise ValueError("merge_records() needs at least one record")
    ordered = sorted(records, key=_priority)  # stable
    data: Dict[str, object] = {"name": ordered[0].name, "source": ordered[0].source}
    for field in PERSON_ATTRIBUTES:
        if field == "order_index":
            positions = [r.order_index for r in ordered if r.order_index is not None]
            data[field] = min(positions) if positions else None
            continue
        for r in ordered:
            val = getattr(r, field)
            if val:
                data[field] = val
                break
    return PersonRecord(**data)


def _fold(groups: Dict[str, List[PersonRecord]], *,
          weak: Callable[[str], bool], strong: Callable[[str], bool]) -> None:
    """Move each weak group into the single strong group sharing one of its names."""
    # normalized names seen in each strong group
    names_by_key: Dict[str, Set[str]] = {
        key: {normalize_name(r.name) for r in recs}
        for key, recs in groups.items()
        if strong(key)
    }
    for key in [k for k in groups if weak(k)]:
        names = {normalize_name(r.name) for r in groups[key]}
        owners = [k for k, seen in names_by_key.items() if names & seen]
        if len(owners) == 1:
            groups[owners[0]].extend(groups.pop(key))


def dedupe(records: List[PersonRecord], *, target_id: str,
           method: ExtractionMethod, captured_at: Optional[datetime] = None) -> RosterSnapshot:
    """Collapse raw candidates into one record per identity.

    Weaker groups fold into a stronger one carrying the same normalized name,
    but only when exactly one such group exists: email groups into a linkedin
    group, then name-only groups into any key-bearing group. With zero or
    several candidates a group stays on its own.
    """
    groups: Dict[str, List[PersonRecord]] = {}
    for rec in sorted(records, key=_priority):
        ident = normalize(rec)
        if not ident.normalized_name:
            continue
        groups.setdefault(ident.identity_key, []).append(rec)

    _fold(groups, weak=lambda k: k.startswith(EMAIL_KEY_PREFIX),
          strong=lambda k: k.startswith(LINKEDIN_KEY_PREFIX))
    _fold(groups, weak=is_name_key, strong=lambda k: not is_name_key(k))

    merged = [merge_records(recs) for recs in groups.values()]
    merged.sort(key=lambda r: (
        r.order_index if r.order_index is not None else float("inf"),
        normalize_name(r.name),
    ))
    return RosterSnapshot(
        target_id=target_id,
        records=merged,
        method=method,
        captured_at=captured_at or utcnow(),
    )

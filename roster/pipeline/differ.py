"""
Roster Differ - reconcile a new RosterSnapshot with the stored active roster

Pure function: no I/O. Produces ChangeEvents plus the StoredMember writes the
caller has to persist.

Matching:
  pass 1  identity_key equality
  pass 2  normalized-name equality, only when either side's key is name-derived
          or a stored email key reappears on a LinkedIn-keyed record

No fuzzy matching: a spelling variant of an unkeyed person reads as
removed + added.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..schemas import (
    ChangeEvent,
    ChangeType,
    PersonRecord,
    RosterSnapshot,
    StoredMember,
)
from .enrich import photo_hash
from .normalize import (
    EMAIL_KEY_PREFIX,
    LINKEDIN_KEY_PREFIX,
    is_name_key,
    normalize,
    normalize_email,
)


MUTABLE_FIELDS = (
    "title",
    "bio",
    "image_url",
    "location",
    "seniority",
    "department",
    "category",
    "profile_url",
    "linkedin_url",
    "twitter_url",
    "github_url",
    "personal_website",
    "email",
    "phone",
)

_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "roster-watch")


@dataclass(frozen=True)
class DiffResult:
    events: List[ChangeEvent] = field(default_factory=list)
    upserts: List[StoredMember] = field(default_factory=list)
    deactivated: List[StoredMember] = field(default_factory=list)

    def counts(self) -> Dict[str, int]:
        out = {t.value: 0 for t in ChangeType}
        for e in self.events:
            out[e.change_type.value] += 1
        return out


def member_id_for(target_id: str, identity_key: str, ts: datetime) -> str:
    return str(uuid.uuid5(_ID_NAMESPACE, f"member|{target_id}|{identity_key}|{ts.isoformat()}"))


def _event_id(target_id: str, change_type: ChangeType, identity_key: str,
              member_id: str, ts: datetime) -> str:
    seed = f"event|{target_id}|{change_type.value}|{identity_key}|{member_id}|{ts.isoformat()}"
    return str(uuid.uuid5(_ID_NAMESPACE, seed))


def _same_value(field_name: str, old: Any, new: Any) -> bool:
    if field_name == "image_url":
        # CDN cache-busting query strings are not a photo change
        return photo_hash(old) == photo_hash(new)
    return old == new


def _key_rank(key: str) -> int:
    if key.startswith(LINKEDIN_KEY_PREFIX):
        return 0
    if key.startswith(EMAIL_KEY_PREFIX):
        return 1
    return 2


def _same_email(member: StoredMember, key: str, record: PersonRecord) -> bool:
    """A stored email-keyed member seen again with a LinkedIn profile."""
    if not (member.identity_key.startswith(EMAIL_KEY_PREFIX) and key.startswith(LINKEDIN_KEY_PREFIX)):
        return False
    return normalize_email(record.email) == member.identity_key[len(EMAIL_KEY_PREFIX):]


def compare_fields(member: StoredMember, record: PersonRecord) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Return (before, after) for the mutable fields that changed.

    A field missing from the new record keeps its stored value.
    """
    before: Dict[str, Any] = {}
    after: Dict[str, Any] = {}
    for f in MUTABLE_FIELDS:
        new_val = getattr(record, f)
        if new_val is None:
            continue
        old_val = getattr(member, f)
        if not _same_value(f, old_val, new_val):
            before[f] = old_val
            after[f] = new_val
    return before, after


def diff(target_id: str, previous_active: List[StoredMember], snapshot: RosterSnapshot,
         *, now: Optional[datetime] = None) -> DiffResult:
    now = now or snapshot.captured_at

    # One primary stored member per key; later duplicates are removed
    by_key: Dict[str, StoredMember] = {}
    duplicates: List[StoredMember] = []
    for m in sorted(previous_active, key=lambda m: (m.first_seen, m.id)):
        if m.identity_key in by_key:
            duplicates.append(m)
        else:
            by_key[m.identity_key] = m

    incoming: List[Tuple[str, str, PersonRecord]] = []
    seen_keys = set()
    for rec in snapshot.records:
        ident = normalize(rec)
        if not ident.normalized_name or ident.identity_key in seen_keys:
            continue
        seen_keys.add(ident.identity_key)
        incoming.append((ident.identity_key, ident.normalized_name, rec))
    incoming.sort(key=lambda t: t[0])

    matches: List[Tuple[StoredMember, str, PersonRecord]] = []
    unmatched_new: List[Tuple[str, str, PersonRecord]] = []
    for key, nn, rec in incoming:
        member = by_key.pop(key, None)
        if member is not None:
            matches.append((member, key, rec))
        else:
            unmatched_new.append((key, nn, rec))

    still_new: List[Tuple[str, str, PersonRecord]] = []
    for key, nn, rec in unmatched_new:
        found = None
        for m in sorted(by_key.values(), key=lambda m: (m.first_seen, m.id)):
            if m.normalized_name != nn:
                continue
            if is_name_key(key) or is_name_key(m.identity_key) or _same_email(m, key, rec):
                found = m
                break
        if found is None:
            still_new.append((key, nn, rec))
            continue
        del by_key[found.identity_key]
        matches.append((found, key, rec))

    staged: List[Tuple[ChangeType, str, ChangeEvent]] = []
    upserts: List[StoredMember] = []
    deactivated: List[StoredMember] = []

    for member, key, rec in matches:
        before, after = compare_fields(member, rec)
        update: Dict[str, Any] = dict(after)
        update["last_seen"] = now
        if rec.order_index is not None:
            update["order_index"] = rec.order_index
        if _key_rank(key) < _key_rank(member.identity_key):
            update["identity_key"] = key
        updated = member.model_copy(update=update)
        upserts.append(updated)
        if after:
            staged.append((ChangeType.UPDATED, updated.identity_key, ChangeEvent(
                id=_event_id(target_id, ChangeType.UPDATED, updated.identity_key, member.id, now),
                target_id=target_id,
                member_id=member.id,
                change_type=ChangeType.UPDATED,
                member_name=member.name,
                previous_data=before,
                new_data=after,
                detected_at=now,
            )))

    for key, nn, rec in still_new:
        attrs = {k: v for k, v in rec.attributes().items() if v is not None}
        member = StoredMember(
            id=member_id_for(target_id, key, now),
            target_id=target_id,
            identity_key=key,
            name=rec.name,
            normalized_name=nn,
            is_active=True,
            first_seen=now,
            last_seen=now,
            **attrs,
        )
        upserts.append(member)
        staged.append((ChangeType.ADDED, key, ChangeEvent(
            id=_event_id(target_id, ChangeType.ADDED, key, member.id, now),
            target_id=target_id,
            member_id=member.id,
            change_type=ChangeType.ADDED,
            member_name=member.name,
            previous_data=None,
            new_data=member.snapshot_data(),
            detected_at=now,
        )))

    for member in list(by_key.values()) + duplicates:
        gone = member.model_copy(update={"is_active": False})
        deactivated.append(gone)
        staged.append((ChangeType.REMOVED, member.identity_key, ChangeEvent(
            id=_event_id(target_id, ChangeType.REMOVED, member.identity_key, member.id, now),
            target_id=target_id,
            member_id=member.id,
            change_type=ChangeType.REMOVED,
            member_name=member.name,
            previous_data=member.snapshot_data(),
            new_data=None,
            detected_at=now,
        )))

    staged.sort(key=lambda t: (t[0].value, t[1], t[2].member_id or ""))
    upserts.sort(key=lambda m: (m.identity_key, m.id))
    deactivated.sort(key=lambda m: (m.identity_key, m.id))
    return DiffResult(
        events=[e for _, _, e in staged],
        upserts=upserts,
        deactivated=deactivated,
    )

from __future__ import annotations

from typing import Dict, List

from ..errors import PersistenceError
from ..schemas import ChangeEvent, ExtractionAttempt, StoredMember
from .base import RosterStore


class InMemoryStore(RosterStore):
    """Dict-backed store for tests and dry runs."""

    def __init__(self) -> None:
        self.members: Dict[str, StoredMember] = {}
        self.events: List[ChangeEvent] = []
        self.attempts: List[ExtractionAttempt] = []

    def get_active_roster(self, target_id: str) -> List[StoredMember]:
        return [
            m.model_copy()
            for m in self.members.values()
            if m.target_id == target_id and m.is_active
        ]

    def upsert_member(self, member: StoredMember) -> None:
        if member.is_active:
            for other in self.members.values():
                if (other.id != member.id and other.is_active and other.target_id == member.target_id
                        and other.identity_key == member.identity_key):
                    raise PersistenceError(
                        f"active member already exists for {member.target_id}/{member.identity_key}"
                    )
        self.members[member.id] = member.model_copy()

    def deactivate_member(self, member_id: str) -> None:
        member = self.members.get(member_id)
        if member is None:
            raise PersistenceError(f"unknown member id: {member_id}")
        member.is_active = False

    def append_change_event(self, event: ChangeEvent) -> None:
        self.events.append(event)

    def append_extraction_attempt(self, attempt: ExtractionAttempt) -> None:
        self.attempts.append(attempt)

    def history(self, target_id: str) -> List[ChangeEvent]:
        return [e for e in self.events if e.target_id == target_id]

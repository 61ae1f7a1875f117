from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from ..schemas import ChangeEvent, ExtractionAttempt, StoredMember


class RosterStore(ABC):
    """Persistence interface consumed by RosterService.

    Adapters raise PersistenceError for any read/write failure.
    """

    @abstractmethod
    def get_active_roster(self, target_id: str) -> List[StoredMember]:
        ...

    @abstractmethod
    def upsert_member(self, member: StoredMember) -> None:
        ...

    @abstractmethod
    def deactivate_member(self, member_id: str) -> None:
        ...

    @abstractmethod
    def append_change_event(self, event: ChangeEvent) -> None:
        ...

    @abstractmethod
    def append_extraction_attempt(self, attempt: ExtractionAttempt) -> None:
        ...

    def close(self) -> None:
        pass

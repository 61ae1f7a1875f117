"""
Roster Watch - Pydantic Data Schemas

Core data models for the roster pipeline: transient PersonRecords produced by
extraction, the deduplicated RosterSnapshot, persisted StoredMembers and the
append-only ChangeEvent / ExtractionAttempt audit records.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clean_email(value: Optional[str]) -> Optional[str]:
    """Lowercased address from a bare value or mailto: href; None when malformed.

    The single email rule: records, identity keys and extractors all use it.
    """
    if not value:
        return None
    e = str(value).strip().lower()
    if e.startswith("mailto:"):
        e = e[7:]
    e = e.split("?", 1)[0].split("#", 1)[0].strip()
    return e if EMAIL_RE.match(e) else None


class ExtractionMethod(str, Enum):
    """How a roster was acquired."""
    STATIC = "static"
    DYNAMIC = "dynamic"


class AttemptStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class ChangeType(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    UPDATED = "updated"


class AcquisitionStatus(str, Enum):
    DONE = "done"
    FAILED = "failed"


class RunStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    REJECTED = "rejected"   # malformed target, no attempt made


# Optional person attributes shared by PersonRecord and StoredMember
PERSON_ATTRIBUTES = (
    "title",
    "bio",
    "image_url",
    "profile_url",
    "linkedin_url",
    "twitter_url",
    "github_url",
    "personal_website",
    "email",
    "phone",
    "location",
    "seniority",
    "department",
    "category",
    "order_index",
)


class PersonRecord(BaseModel):
    """
    One candidate person produced by a single extraction pass.

    Transient: never persisted directly. Every field except ``name`` is
    optional; completeness is handled by enrichment, not extraction.
    """
    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    name: str = Field(..., description="Person's display name as found on the page")
    title: Optional[str] = Field(default=None, description="Role or job title")
    bio: Optional[str] = Field(default=None, description="Short biography / description")
    image_url: Optional[str] = None
    profile_url: Optional[str] = None
    linkedin_url: Optional[str] = None
    twitter_url: Optional[str] = None
    github_url: Optional[str] = None
    personal_website: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    seniority: Optional[str] = None
    department: Optional[str] = None
    category: Optional[str] = None
    order_index: Optional[int] = Field(default=None, description="Ordinal position on the page")
    source: Optional[str] = Field(default=None, description="Strategy that produced this record")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name cannot be empty")
        return " ".join(v.split())

    @field_validator(
        "title", "bio", "image_url", "profile_url", "linkedin_url", "twitter_url",
        "github_url", "personal_website", "phone", "location", "seniority",
        "department", "category",
    )
    @classmethod
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return clean_email(v)

    def attributes(self) -> Dict[str, Any]:
        """Optional attributes as a plain dict (None values kept)."""
        return {k: getattr(self, k) for k in PERSON_ATTRIBUTES}


class NormalizedIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    normalized_name: str
    identity_key: str


class RosterSnapshot(BaseModel):
    """Deduplicated result of one completed extraction run for one target."""
    target_id: str
    records: List[PersonRecord] = Field(default_factory=list)
    method: ExtractionMethod
    captured_at: datetime = Field(default_factory=utcnow)

    def __len__(self) -> int:
        return len(self.records)

    def names(self) -> List[str]:
        return [r.name for r in self.records]


class StoredMember(BaseModel):
    """Durable record of a person ever observed for a target."""
    model_config = ConfigDict(validate_assignment=True)

    id: str
    target_id: str
    identity_key: str
    name: str
    normalized_name: str
    title: Optional[str] = None
    bio: Optional[str] = None
    image_url: Optional[str] = None
    profile_url: Optional[str] = None
    linkedin_url: Optional[str] = None
    twitter_url: Optional[str] = None
    github_url: Optional[str] = None
    personal_website: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    seniority: Optional[str] = None
    department: Optional[str] = None
    category: Optional[str] = None
    order_index: Optional[int] = None
    is_active: bool = True
    first_seen: datetime = Field(default_factory=utcnow)
    last_seen: datetime = Field(default_factory=utcnow)

    def snapshot_data(self) -> Dict[str, Any]:
        """Last known name + mutable fields, as carried in change events."""
        data: Dict[str, Any] = {"name": self.name}
        data.update({k: getattr(self, k) for k in PERSON_ATTRIBUTES})
        return data


class ChangeEvent(BaseModel):
    """Immutable added/removed/updated transition produced by the Roster Differ."""
    model_config = ConfigDict(frozen=True)

    id: str
    target_id: str
    member_id: Optional[str] = None
    change_type: ChangeType
    member_name: str
    previous_data: Optional[Dict[str, Any]] = None
    new_data: Optional[Dict[str, Any]] = None
    detected_at: datetime = Field(default_factory=utcnow)


class ExtractionAttempt(BaseModel):
    """Append-only audit record for one static or dynamic acquisition attempt."""
    target_id: str
    method: ExtractionMethod
    status: AttemptStatus
    record_count: int = 0
    duration_ms: int = 0
    error_message: Optional[str] = None
    artifact_refs: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)


class Target(BaseModel):
    """Descriptor of one monitored organization, supplied by record management."""
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    id: str
    display_name: str = Field(default="", alias="name")
    team_page_url: str = Field(..., alias="teamPageUrl")

    def is_valid(self) -> bool:
        return target_url_problem(self) is None


def target_url_problem(target: Any) -> Optional[str]:
    """Return why a target descriptor is unusable, or None if it is fine."""
    if target is None:
        return "missing target descriptor"
    tid = getattr(target, "id", None)
    if not tid or not str(tid).strip():
        return "missing target id"
    url = getattr(target, "team_page_url", None)
    if not url or not str(url).strip():
        return "missing team page URL"
    try:
        p = urlparse(str(url).strip())
    except ValueError:
        return f"unparsable team page URL: {url!r}"
    if p.scheme not in ("http", "https") or not p.netloc:
        return f"unparsable team page URL: {url!r}"
    return None


class AcquisitionResult(BaseModel):
    """Outcome of one Orchestrator run; failures are carried, never raised."""
    target_id: str
    status: AcquisitionStatus
    snapshot: Optional[RosterSnapshot] = None
    attempts: List[ExtractionAttempt] = Field(default_factory=list)
    error: Optional[str] = None
    escalation_reasons: List[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == AcquisitionStatus.DONE


class RunResult(BaseModel):
    """Result of runExtraction for one target."""
    target_id: str
    status: RunStatus
    snapshot: Optional[RosterSnapshot] = None
    change_events: List[ChangeEvent] = Field(default_factory=list)
    attempts: List[ExtractionAttempt] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

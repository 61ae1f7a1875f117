from __future__ import annotations

import hashlib
import re
from enum import IntEnum
from typing import List, Optional, Tuple

from ..schemas import PersonRecord


class SeniorityTier(IntEnum):
    UNKNOWN = 0
    JUNIOR = 1
    MID = 2
    SENIOR = 3
    EXECUTIVE = 4

    @classmethod
    def from_str(cls, s: str) -> "SeniorityTier":
        if s is None:
            return cls.UNKNOWN
        key = str(s).strip().upper().replace("-", "_").replace(" ", "_")
        return cls.__members__.get(key, cls.UNKNOWN)

    @property
    def label(self) -> str:
        return self.name.lower()


# Negative markers are checked first; they cap a title at JUNIOR
_JUNIOR_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\bintern(ship)?\b", re.I), "intern"),
    (re.compile(r"\btrainee\b", re.I), "trainee"),
    (re.compile(r"\bjunior\b", re.I), "junior"),
    (re.compile(r"\bjr\.?\b", re.I), "jr"),
    (re.compile(r"\bentry[- ]level\b", re.I), "entry"),
]

# Order matters: more specific patterns first
_TIER_PATTERNS: list[tuple[re.Pattern[str], SeniorityTier, str]] = [
    # EXECUTIVE
    (re.compile(r"\bchief [a-z]+ officer\b", re.I), SeniorityTier.EXECUTIVE, "chief officer"),
    (re.compile(r"\b(ceo|cfo|coo|cto|cmo|cio)\b", re.I), SeniorityTier.EXECUTIVE, "c-suite"),
    (re.compile(r"\bco-?founder\b|\bfounder\b", re.I), SeniorityTier.EXECUTIVE, "founder"),
    (re.compile(r"(?<!vice )\bpresident\b", re.I), SeniorityTier.EXECUTIVE, "president"),
    (re.compile(r"\bmanaging (partner|director)\b", re.I), SeniorityTier.EXECUTIVE, "managing"),
    (re.compile(r"\bgeneral partner\b", re.I), SeniorityTier.EXECUTIVE, "general partner"),
    (re.compile(r"\b(co-?)?chair(man|woman|person)?\b", re.I), SeniorityTier.EXECUTIVE, "chair"),
    # SENIOR
    (re.compile(r"\bvice president\b|\b[se]?vp\b", re.I), SeniorityTier.SENIOR, "vp"),
    (re.compile(r"\bhead of\b", re.I), SeniorityTier.SENIOR, "head of"),
    (re.compile(r"\bdirector\b", re.I), SeniorityTier.SENIOR, "director"),
    (re.compile(r"\bpartner\b", re.I), SeniorityTier.SENIOR, "partner"),
    (re.compile(r"\bprincipal\b", re.I), SeniorityTier.SENIOR, "principal"),
    (re.compile(r"\b(senior|sr\.?)\b", re.I), SeniorityTier.SENIOR, "senior"),
    (re.compile(r"\blead\b", re.I), SeniorityTier.SENIOR, "lead"),
    # MID
    (re.compile(r"\bmanager\b", re.I), SeniorityTier.MID, "manager"),
    (re.compile(r"\bassociate\b", re.I), SeniorityTier.MID, "associate"),
    (re.compile(r"\banalyst\b", re.I), SeniorityTier.MID, "analyst"),
    (re.compile(r"\bcoordinator\b", re.I), SeniorityTier.MID, "coordinator"),
    (re.compile(r"\bspecialist\b", re.I), SeniorityTier.MID, "specialist"),
]

_DEPARTMENTS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(partner|managing|venture|investment|investing|portfolio)\b", re.I), "investment"),
    (re.compile(r"\b(operations|ops|operating|platform)\b", re.I), "operations"),
    (re.compile(r"\b(marketing|brand|communications|pr|public relations)\b", re.I), "marketing"),
    (re.compile(r"\b(finance|financial|accounting|controller|cfo)\b", re.I), "finance"),
    (re.compile(r"\b(legal|counsel|attorney|compliance)\b", re.I), "legal"),
    (re.compile(r"\b(hr|human resources|people|talent|recruiting)\b", re.I), "people"),
    (re.compile(r"\b(tech|technology|engineering|engineer|developer|data|cto)\b", re.I), "technology"),
]

_CATEGORIES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\bventure partner\b|\b(operating|operations|platform|advisor|adviser)\b", re.I), "operating_professional"),
    (re.compile(r"\b(partner|managing|general partner)\b", re.I), "partner"),
    (re.compile(r"\b(principal|director|vice president|vp)\b", re.I), "senior_professional"),
    (re.compile(r"\b(associate|analyst|manager)\b", re.I), "professional"),
    (re.compile(r"\b(founder|entrepreneur|ceo|executive)\b", re.I), "executive"),
]

KNOWN_LOCATIONS = [
    "San Francisco", "New York", "NYC", "Boston", "Austin", "Seattle", "Los Angeles",
    "Chicago", "London", "Singapore", "Hong Kong", "Beijing", "Shanghai", "Tokyo",
    "Sydney", "Toronto", "Berlin", "Paris", "Amsterdam", "Tel Aviv", "Bangalore",
    "Mumbai", "Menlo Park", "Palo Alto", "Stockholm", "Dublin", "Zurich",
]


def _normalize(s: Optional[str]) -> str:
    if s is None:
        return ""
    return str(s).strip().lower()


def normalize_title(title: Optional[str]) -> str:
    if not title:
        return ""
    t = re.sub(r"\s+", " ", str(title).strip()).lower()
    return re.sub(r"[^\w\s\-&]", "", t)


def classify_seniority(title: Optional[str]) -> Tuple[SeniorityTier, List[str]]:
    """Classify a role title into a SeniorityTier and return reasons.

    - Junior markers win over everything else.
    - Otherwise the strongest matching tier is kept.
    - Robust to None/empty inputs.
    """
    reasons: List[str] = []
    tnorm = _normalize(title)
    if not tnorm:
        return SeniorityTier.UNKNOWN, reasons

    for pat, label in _JUNIOR_PATTERNS:
        if pat.search(tnorm):
            reasons.append(f"junior:{label}")
            return SeniorityTier.JUNIOR, reasons

    level = SeniorityTier.UNKNOWN
    for pat, tier, label in _TIER_PATTERNS:
        if pat.search(tnorm):
            level = max(level, tier)
            reasons.append(f"title:{label}")
    return level, reasons


def classify_department(title: Optional[str]) -> Optional[str]:
    tnorm = _normalize(title)
    if not tnorm:
        return None
    for pat, dept in _DEPARTMENTS:
        if pat.search(tnorm):
            return dept
    return "other"


def categorize_role(title: Optional[str]) -> Optional[str]:
    tnorm = _normalize(title)
    if not tnorm:
        return None
    for pat, cat in _CATEGORIES:
        if pat.search(tnorm):
            return cat
    return "other"


def location_from_text(text: Optional[str]) -> Optional[str]:
    low = _normalize(text)
    if not low:
        return None
    for loc in KNOWN_LOCATIONS:
        if re.search(r"\b" + re.escape(loc.lower()) + r"\b", low):
            return loc
    return None


def photo_hash(image_url: Optional[str]) -> Optional[str]:
    """Short stable fingerprint of an image URL (query string ignored)."""
    if not image_url:
        return None
    base = image_url.split("?", 1)[0].strip()
    return hashlib.sha256(base.encode("utf-8")).hexdigest()[:16]


def enrich_record(record: PersonRecord) -> PersonRecord:
    """Fill empty derived attributes from the title. Never overwrites extracted values."""
    updates = {}
    if record.title:
        if not record.seniority:
            tier, _ = classify_seniority(record.title)
            if tier is not SeniorityTier.UNKNOWN:
                updates["seniority"] = tier.label
        if not record.department:
            updates["department"] = classify_department(record.title)
        if not record.category:
            updates["category"] = categorize_role(record.title)
        if not record.location:
            loc = location_from_text(record.title)
            if loc:
                updates["location"] = loc
    if not updates:
        return record
    return record.model_copy(update=updates)


def enrich_records(records: List[PersonRecord]) -> List[PersonRecord]:
    return [enrich_record(r) for r in records]

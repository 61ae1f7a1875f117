"""
Identity normalization: raw strings -> canonical comparison keys.

identity_key precedence (highest first):
  1. professional-network profile id  -> "linkedin:<id>"
  2. email address (lowercased)       -> "email:<address>"
  3. normalized name                  -> "name:<normalized name>"
"""

from __future__ import annotations

import re
from typing import Optional, Union
from urllib.parse import unquote

from ..schemas import NormalizedIdentity, PersonRecord, StoredMember, clean_email


LINKEDIN_KEY_PREFIX = "linkedin:"
EMAIL_KEY_PREFIX = "email:"
NAME_KEY_PREFIX = "name:"

_WS_RE = re.compile(r"\s+")
# Anything that is not a letter/digit, whitespace, hyphen or apostrophe
_PUNCT_RE = re.compile(r"[^\w\s'\-]|_", re.UNICODE)
_APOSTROPHES = str.maketrans({"’": "'", "‘": "'", "ʼ": "'", "‐": "-", "‑": "-"})
_LINKEDIN_RE = re.compile(r"linkedin\.com/(?:in|pub)/([^/?#\s]+)", re.IGNORECASE)


def normalize_name(raw: Optional[str]) -> str:
    """trim -> collapse whitespace -> strip punctuation (keep - and ') -> lowercase.

    Idempotent: normalize_name(normalize_name(x)) == normalize_name(x).
    """
    if not raw:
        return ""
    s = str(raw).translate(_APOSTROPHES).strip()
    s = _WS_RE.sub(" ", s)
    s = _PUNCT_RE.sub("", s)
    # stripping may leave doubled or edge spaces ("A . B")
    s = _WS_RE.sub(" ", s).strip()
    return s.lower()


def profile_id_from_url(url: Optional[str]) -> Optional[str]:
    """Extract the LinkedIn public profile id from a URL, if it is one."""
    if not url:
        return None
    m = _LINKEDIN_RE.search(str(url))
    if not m:
        return None
    pid = unquote(m.group(1)).strip().strip("/").lower()
    return pid or None


def normalize_email(email: Optional[str]) -> Optional[str]:
    return clean_email(email)


def identity_key_for(name: Optional[str], *, linkedin_url: Optional[str] = None,
                     profile_url: Optional[str] = None, email: Optional[str] = None) -> str:
    pid = profile_id_from_url(linkedin_url) or profile_id_from_url(profile_url)
    if pid:
        return LINKEDIN_KEY_PREFIX + pid
    em = normalize_email(email)
    if em:
        return EMAIL_KEY_PREFIX + em
    return NAME_KEY_PREFIX + normalize_name(name)


def normalize(record: Union[PersonRecord, StoredMember, str]) -> NormalizedIdentity:
    """Derive the NormalizedIdentity of a record, stored member, or bare name."""
    if isinstance(record, str):
        nn = normalize_name(record)
        return NormalizedIdentity(normalized_name=nn, identity_key=NAME_KEY_PREFIX + nn)
    nn = normalize_name(record.name)
    key = identity_key_for(
        record.name,
        linkedin_url=record.linkedin_url,
        profile_url=record.profile_url,
        email=record.email,
    )
    return NormalizedIdentity(normalized_name=nn, identity_key=key)


def is_name_key(key: Optional[str]) -> bool:
    """True when a key was derived from the name only (no key-bearing field)."""
    return not key or key.startswith(NAME_KEY_PREFIX)

"""
Artifact Store - raw HTML and screenshots behind each extraction attempt

Layout:
  <root>/<target_id>/<YYYYmmddTHHMMSS>_<kind>.<suffix>

kind is one of "static", "dynamic", "screenshot". Paths end up in
ExtractionAttempt.artifact_refs so a failed or surprising diff can be audited
against the page as it was fetched.
"""

import hashlib
import re
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Union


_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_component(value: str) -> str:
    """Turn an arbitrary target id into a single safe path component."""
    cleaned = _UNSAFE_RE.sub("_", str(value)).strip("._")
    if not cleaned:
        # fall back to a stable digest for ids made only of unsafe characters
        cleaned = hashlib.md5(str(value).encode("utf-8")).hexdigest()[:12]
    return cleaned


def content_hash(text: str) -> str:
    """SHA-256 (lowercase hex) of stored text, whitespace-normalized."""
    normalized = " ".join((text or "").split())
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


class ArtifactStore(ABC):
    """Where raw artifacts of an attempt are written."""

    @abstractmethod
    def path_for(self, target_id: str, timestamp: datetime, kind: str, suffix: str) -> Path:
        ...

    def write_text(self, target_id: str, timestamp: datetime, kind: str, text: str,
                   suffix: str = "html") -> Path:
        path = self.path_for(target_id, timestamp, kind, suffix)
        path.write_text(text or "", encoding="utf-8")
        return path


class FilesystemArtifactStore(ArtifactStore):
    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, target_id: str, timestamp: datetime, kind: str, suffix: str) -> Path:
        directory = self.root / safe_component(target_id)
        directory.mkdir(parents=True, exist_ok=True)
        stamp = timestamp.strftime("%Y%m%dT%H%M%S")
        return directory / f"{stamp}_{safe_component(kind)}.{suffix.lstrip('.')}"

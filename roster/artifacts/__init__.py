"""
Roster Watch - Artifact Store Module

Filesystem storage for the raw HTML and screenshots behind each extraction
attempt.
"""

from .store import ArtifactStore, FilesystemArtifactStore, content_hash, safe_component

__all__ = ['ArtifactStore', 'FilesystemArtifactStore', 'content_hash', 'safe_component']

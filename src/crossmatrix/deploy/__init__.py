"""
Artifact publishing for crossmatrix.

This module provides storage backends and the publisher that uploads
compiled binaries under deterministic names.
"""

from .publisher import ArtifactPublisher, ArtifactStore, HttpArtifactStore, LocalArtifactStore

__all__ = [
    "ArtifactPublisher",
    "ArtifactStore",
    "HttpArtifactStore",
    "LocalArtifactStore",
]

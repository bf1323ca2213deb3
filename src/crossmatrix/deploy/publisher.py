"""
Artifact publishing.

This module uploads compiled binaries under names derived from job identity
("<target_name> <os> <toolchain>"). Storage is pluggable: a local directory
store and an HTTP store are provided.
"""

import logging
import shutil
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Set
from urllib.parse import quote

import requests

from ..build.build_executor import Artifact
from ..errors import PublishError, StorageError


class ArtifactStore(ABC):
    """Storage backend for published artifacts."""

    @abstractmethod
    def store(self, name: str, source_path: Path) -> str:
        """Store a file under an artifact name.

        Args:
            name: Artifact name
            source_path: File to store

        Returns:
            Location of the stored artifact (path or URL)

        Raises:
            StorageError: If the artifact cannot be stored
        """
        pass


class LocalArtifactStore(ArtifactStore):
    """Stores artifacts in a directory, one sub-directory per artifact name.

    Layout:
        <root>/
        └── aarf ubuntu-latest stable/
            └── aarf
    """

    def __init__(self, root: Path):
        self.root = root

    def store(self, name: str, source_path: Path) -> str:
        dest_dir = self.root / name
        dest = dest_dir / source_path.name
        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source_path, dest)
        except OSError as e:
            raise StorageError(f"Failed to store {source_path} as '{name}': {e}", name=name) from e
        return str(dest)


class HttpArtifactStore(ArtifactStore):
    """Uploads artifacts with HTTP PUT to <base_url>/<name>/<file name>."""

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 300,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def url_for(self, name: str, source_path: Path) -> str:
        return f"{self.base_url}/{quote(name)}/{quote(source_path.name)}"

    def store(self, name: str, source_path: Path) -> str:
        url = self.url_for(name, source_path)
        try:
            with open(source_path, "rb") as f:
                response = self.session.put(
                    url,
                    data=f,
                    headers={"Content-Type": "application/octet-stream"},
                    timeout=self.timeout,
                )
            response.raise_for_status()
        except OSError as e:
            raise StorageError(f"Failed to read {source_path}: {e}", name=name) from e
        except requests.RequestException as e:
            raise StorageError(f"Failed to upload '{name}' to {url}: {e}", name=name) from e
        return url


class ArtifactPublisher:
    """Publishes each artifact exactly once.

    Example usage:
        publisher = ArtifactPublisher(LocalArtifactStore(Path("artifacts")))
        location = publisher.publish(artifact)
    """

    def __init__(self, store: ArtifactStore):
        self.store = store
        self._lock = threading.Lock()
        self._published: Set[str] = set()

    def publish(self, artifact: Artifact) -> str:
        """Publish an artifact under its job-derived name.

        Returns:
            Location reported by the store

        Raises:
            PublishError: If the name was already published in this run or
                the store fails
        """
        name = artifact.name
        with self._lock:
            if name in self._published:
                raise PublishError(f"Artifact '{name}' was already published")
            self._published.add(name)

        if not artifact.path.exists():
            raise PublishError(f"Artifact file not found: {artifact.path}")

        try:
            location = self.store.store(name, artifact.path)
        except StorageError as e:
            raise PublishError(str(e)) from e

        logging.info(f"[{artifact.job.job_id}] Published '{name}' to {location}")
        return location

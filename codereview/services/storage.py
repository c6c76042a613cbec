"""
Artifact storage — blob store for files attached to submissions.

Uploads land in a staging directory first; a submission only references a
file once it has been promoted into permanent storage under a random
name. The original filename is kept in the database, never on disk.

Public paths look like ``/uploads/submissions/<uuid><ext>``.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass

from flask import current_app

from codereview.core.exceptions import StorageError

logger = logging.getLogger(__name__)

PUBLIC_PREFIX = "/uploads/submissions"
_EXTENSION_RE = re.compile(r"^\.[a-z0-9]{1,16}$")


def _safe_extension(filename: str) -> str:
    """Lower-cased extension of the original name; "" unless it is short and alphanumeric."""
    ext = os.path.splitext(filename)[1].lower()
    return ext if _EXTENSION_RE.match(ext) else ""


@dataclass(frozen=True)
class StagedArtifact:
    """An uploaded file sitting in the staging area."""
    staging_path: str
    original_name: str
    content_type: str


class ArtifactStorage(ABC):
    """Interface the submission lifecycle manager depends on."""

    @abstractmethod
    def stage(self, file_storage) -> StagedArtifact: ...

    @abstractmethod
    def promote(self, staged: StagedArtifact) -> str:
        """Move a staged file to permanent storage and return its public path."""

    @abstractmethod
    def resolve(self, public_path: str) -> str:
        """Local filesystem path of a stored artifact."""

    @abstractmethod
    def delete(self, public_path: str) -> None: ...

    @abstractmethod
    def discard(self, staged: StagedArtifact) -> None:
        """Drop a staged file that will not be promoted."""


class LocalArtifactStorage(ArtifactStorage):
    """Filesystem-backed storage rooted at ``upload_root``."""

    def __init__(self, upload_root: str, staging_root: str, public_prefix: str = PUBLIC_PREFIX):
        self.upload_root = upload_root
        self.staging_root = staging_root
        self.public_prefix = public_prefix.rstrip("/")

    def stage(self, file_storage) -> StagedArtifact:
        """Write an incoming werkzeug ``FileStorage`` to the staging area."""
        try:
            os.makedirs(self.staging_root, exist_ok=True)
            staging_path = os.path.join(self.staging_root, uuid.uuid4().hex)
            file_storage.save(staging_path)
        except OSError as exc:
            raise StorageError("Could not stage uploaded file") from exc
        return StagedArtifact(
            staging_path=staging_path,
            original_name=file_storage.filename or "upload",
            content_type=file_storage.mimetype or "application/octet-stream",
        )

    def promote(self, staged: StagedArtifact) -> str:
        ext = _safe_extension(staged.original_name)
        stored_name = f"{uuid.uuid4()}{ext}"
        destination = os.path.join(self.upload_root, stored_name)
        try:
            os.makedirs(self.upload_root, exist_ok=True)
            shutil.move(staged.staging_path, destination)
        except OSError as exc:
            raise StorageError("Could not store uploaded file") from exc
        logger.debug("Promoted %s -> %s", staged.staging_path, destination)
        return f"{self.public_prefix}/{stored_name}"

    def resolve(self, public_path: str) -> str:
        """Filesystem path for a public path. Only the basename is trusted."""
        return os.path.join(self.upload_root, os.path.basename(public_path))

    def delete(self, public_path: str) -> None:
        try:
            os.remove(self.resolve(public_path))
        except FileNotFoundError:
            logger.info("Artifact %s already absent", public_path)
        except OSError as exc:
            raise StorageError(f"Could not delete artifact {public_path}") from exc

    def discard(self, staged: StagedArtifact) -> None:
        try:
            os.remove(staged.staging_path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Could not remove staged file %s: %s", staged.staging_path, exc)


def init_storage(app) -> LocalArtifactStorage:
    """Create the app's artifact storage from config and register it."""
    storage = LocalArtifactStorage(
        upload_root=app.config["UPLOAD_FOLDER"],
        staging_root=app.config["UPLOAD_STAGING_FOLDER"],
    )
    app.extensions["artifact_storage"] = storage
    return storage


def get_artifact_storage() -> ArtifactStorage:
    return current_app.extensions["artifact_storage"]

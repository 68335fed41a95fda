"""Idempotent publishing of generated artifacts into a git storage repository."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path, PurePosixPath
from typing import Callable

from .errors import LocalIOError
from .tools.vcs import GitIdentity, GitRepository
from .utils.slug import slugify

LOGGER = logging.getLogger(__name__)

Generator = Callable[[Path], None]


class ArtifactArchive:
    """Regenerate an artifact, commit it only when it changed and return its URL.

    Running the same request twice leaves the storage untouched the second
    time. Two regenerations for the same request must not run concurrently;
    the runner's per-change-request exclusion takes care of that. A push that
    races an unrelated writer of ``ref`` fails with :class:`GitError`.
    """

    def __init__(
        self,
        storage_url: str,
        ref: str,
        base_folder: str,
        base_uri: str,
        author: GitIdentity,
        *,
        prefix: str = "artifact",
    ) -> None:
        self.storage_url = storage_url
        self.ref = ref
        self.base_folder = PurePosixPath(base_folder)
        self.base_uri = base_uri.rstrip("/")
        self.author = author
        self.prefix = prefix

    def relative_folder(self, request_id: str, identifier: str) -> PurePosixPath:
        return self.base_folder / slugify(request_id, fallback="request") / f"{self.prefix}.{slugify(identifier)}"

    @staticmethod
    def _clear(folder: Path) -> None:
        try:
            shutil.rmtree(folder)
        except OSError as error:
            raise LocalIOError(f"Unable to clear previous output in {folder}: {error}") from error

    def create_and_archive(
        self,
        request_id: str,
        identifier: str,
        scratch_path: Path,
        generate: Generator,
    ) -> str:
        """Publish the artifact for ``(request_id, identifier)`` and return its URL."""
        storage = GitRepository.materialize(scratch_path / "storage", self.storage_url, self.ref)
        relative = self.relative_folder(request_id, identifier)
        output = storage.root / Path(*relative.parts)
        # An interrupted earlier run may have left partial output behind.
        if output.exists():
            self._clear(output)
        output.mkdir(parents=True)
        generate(output)

        if storage.is_clean():
            LOGGER.info("Artifact %s is unchanged; nothing to push", relative)
        else:
            commit = storage.commit_all(f"Added {self.prefix}", author=self.author)
            LOGGER.info("Pushing artifact %s (%s) to %s", relative, commit, self.ref)
            storage.push(self.storage_url, self.ref)
        return f"{self.base_uri}/{relative.as_posix()}"


__all__ = ["ArtifactArchive"]

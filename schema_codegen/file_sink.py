"""
Conflict-aware file emission.

The sink writes RenderedArtifacts under an output root. What happens when a
target file already exists depends on the conflict policy:

- ``fail-on-exists``: the existing file is left alone and the artifact is
  reported as ``skipped``. An existing file is an expected steady state,
  not an error.
- ``force-overwrite``: the file is replaced.
- ``dry-run``: nothing is touched; the would-be path is reported as
  ``planned``.

A failed write is returned as an ``error`` outcome carrying a FileWriteError
so that the rest of the batch can go on.
"""

import logging
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional, Union

from schema_codegen.domain.models import ConflictPolicy, RenderedArtifact, WriteStatus
from schema_codegen.exceptions import FileWriteError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WriteOutcome:
    status: WriteStatus
    path: Path
    error: Optional[FileWriteError] = None


class FileSink:
    """
    Writes artifacts below ``output_root``.

    Directory creation is recursive and idempotent. Files are written as
    UTF-8 with ``\\n`` line endings on every platform.
    """

    def __init__(self, output_root: Union[str, Path], conflict_policy: ConflictPolicy = ConflictPolicy.FAIL_ON_EXISTS):
        self.output_root = Path(output_root)
        self.conflict_policy = ConflictPolicy(conflict_policy)

    def validate_output_directory(self) -> None:
        """
        Raises:
            FileWriteError: the output root exists but is not a directory.
        """
        if self.output_root.exists() and not self.output_root.is_dir():
            raise FileWriteError(
                f"Output path '{self.output_root}' exists but is not a directory",
                path=str(self.output_root),
            )

    def target_path(self, artifact: RenderedArtifact) -> Path:
        relative = PurePosixPath(artifact.relative_path)
        if relative.is_absolute() or ".." in relative.parts:
            raise FileWriteError(
                f"Artifact path '{artifact.relative_path}' escapes the output directory",
                path=artifact.relative_path,
            )
        return self.output_root.joinpath(*relative.parts)

    def write(self, artifact: RenderedArtifact) -> WriteOutcome:
        try:
            path = self.target_path(artifact)
        except FileWriteError as e:
            logger.error(e.message)
            return WriteOutcome(WriteStatus.ERROR, self.output_root / artifact.relative_path, e)

        if self.conflict_policy == ConflictPolicy.DRY_RUN:
            logger.debug(f"[dry-run] Would write {path}")
            return WriteOutcome(WriteStatus.PLANNED, path)

        if self.conflict_policy == ConflictPolicy.FAIL_ON_EXISTS and path.exists():
            logger.info(f"Skipping existing file: {path}")
            return WriteOutcome(WriteStatus.SKIPPED, path)

        # Exclusive creation under fail-on-exists so a file created meanwhile is not clobbered
        mode = "x" if self.conflict_policy == ConflictPolicy.FAIL_ON_EXISTS else "w"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, mode, encoding="utf-8", newline="\n") as f:
                f.write(artifact.content)
        except FileExistsError:
            logger.info(f"Skipping existing file: {path}")
            return WriteOutcome(WriteStatus.SKIPPED, path)
        except OSError as e:
            error = FileWriteError(f"Could not write '{path}': {e}", path=str(path))
            logger.error(error.message)
            return WriteOutcome(WriteStatus.ERROR, path, error)

        logger.debug(f"Generated file: {path}")
        return WriteOutcome(WriteStatus.WRITTEN, path)


def write(
    artifact: RenderedArtifact,
    output_root: Union[str, Path],
    conflict_policy: ConflictPolicy = ConflictPolicy.FAIL_ON_EXISTS,
) -> WriteOutcome:
    """Write a single artifact; see FileSink."""
    return FileSink(output_root, conflict_policy).write(artifact)

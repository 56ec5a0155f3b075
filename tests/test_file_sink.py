"""
Tests for the conflict-aware file sink.
"""

import pytest

from schema_codegen.domain.models import ArtifactKind, ConflictPolicy, RenderedArtifact, WriteStatus
from schema_codegen.exceptions import FileWriteError
from schema_codegen.file_sink import FileSink, write


def artifact(relative_path="entities/product.py", content="class Product:\n    pass\n"):
    return RenderedArtifact(
        kind=ArtifactKind.ENTITY,
        logical_name="Product",
        relative_path=relative_path,
        content=content,
        table_name="product",
    )


def test_write_creates_directories(output_dir):
    outcome = FileSink(output_dir).write(artifact())
    assert outcome.status == WriteStatus.WRITTEN
    assert outcome.path == output_dir / "entities" / "product.py"
    assert outcome.error is None
    assert outcome.path.read_text(encoding="utf-8") == "class Product:\n    pass\n"


def test_line_endings_are_lf(output_dir):
    outcome = FileSink(output_dir).write(artifact())
    assert b"\r\n" not in outcome.path.read_bytes()


def test_existing_file_is_skipped_and_kept(output_dir):
    target = output_dir / "entities" / "product.py"
    target.parent.mkdir(parents=True)
    target.write_text("# edited by hand\n", encoding="utf-8")

    outcome = FileSink(output_dir).write(artifact())
    assert outcome.status == WriteStatus.SKIPPED
    assert outcome.error is None
    assert target.read_text(encoding="utf-8") == "# edited by hand\n"


def test_force_overwrite_replaces(output_dir):
    target = output_dir / "entities" / "product.py"
    target.parent.mkdir(parents=True)
    target.write_text("# stale\n", encoding="utf-8")

    outcome = FileSink(output_dir, ConflictPolicy.FORCE_OVERWRITE).write(artifact())
    assert outcome.status == WriteStatus.WRITTEN
    assert target.read_text(encoding="utf-8") == "class Product:\n    pass\n"


def test_dry_run_touches_nothing(output_dir):
    outcome = FileSink(output_dir, "dry-run").write(artifact())
    assert outcome.status == WriteStatus.PLANNED
    assert outcome.path == output_dir / "entities" / "product.py"
    assert not output_dir.exists()


def test_unwritable_target_is_an_error_outcome(tmp_path):
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("", encoding="utf-8")

    outcome = FileSink(blocker).write(artifact())
    assert outcome.status == WriteStatus.ERROR
    assert isinstance(outcome.error, FileWriteError)
    assert outcome.error.context["path"] == str(outcome.path)


@pytest.mark.parametrize("relative_path", ["../escape.py", "/etc/escape.py", "entities/../../escape.py"])
def test_paths_outside_the_root_are_rejected(output_dir, relative_path):
    outcome = FileSink(output_dir, ConflictPolicy.FORCE_OVERWRITE).write(artifact(relative_path))
    assert outcome.status == WriteStatus.ERROR
    assert "escapes the output directory" in outcome.error.message
    assert not output_dir.exists()


def test_validate_output_directory(tmp_path):
    FileSink(tmp_path / "missing").validate_output_directory()
    FileSink(tmp_path).validate_output_directory()

    blocker = tmp_path / "file.txt"
    blocker.write_text("", encoding="utf-8")
    with pytest.raises(FileWriteError):
        FileSink(blocker).validate_output_directory()


def test_module_level_write(output_dir):
    assert write(artifact(), output_dir).status == WriteStatus.WRITTEN
    assert write(artifact(), output_dir).status == WriteStatus.SKIPPED

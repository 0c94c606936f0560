"""
Tests for the transactional edit executor.

After any transaction the file is either fully edited or byte-identical
to its pre-image.
"""

import os
import tempfile
from pathlib import Path

import pytest

from fileagent import edits
from fileagent.edits import EditTransaction, TransactionState, apply_edits, diff_preview
from fileagent.errors import AmbiguousMatch, ErrorKind, InvalidArguments, IOFailure, NoMatch
from fileagent.types import EditOperation, MatchOccurrence


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def first(match: str, replacement: str) -> EditOperation:
    return EditOperation(match, replacement, MatchOccurrence.FIRST)


class TestCommit:
    """Successful transactions."""

    def test_sequential_first_replacements(self, temp_dir: Path) -> None:
        path = temp_dir / "a.txt"
        path.write_text("foo foo")

        txn = EditTransaction(path, [first("foo", "bar"), first("foo", "baz")])
        report = txn.execute()

        assert path.read_text() == "bar baz"
        assert txn.state == TransactionState.COMMITTED
        assert report.replacements == [1, 1]

    def test_later_edit_sees_earlier_result(self, temp_dir: Path) -> None:
        path = temp_dir / "a.txt"
        path.write_text("alpha\n")

        apply_edits(path, [first("alpha", "beta"), first("beta", "gamma")])

        assert path.read_text() == "gamma\n"

    def test_replace_all(self, temp_dir: Path) -> None:
        path = temp_dir / "a.py"
        path.write_text("x = 1\nx = x + 1\n")

        report = apply_edits(path, [EditOperation("x", "y", MatchOccurrence.ALL)])

        assert path.read_text() == "y = 1\ny = y + 1\n"
        assert report.total_replacements == 3

    def test_context_disambiguates(self, temp_dir: Path) -> None:
        path = temp_dir / "a.py"
        path.write_text("def a():\n    return 1\n\ndef b():\n    return 1\n")

        op = EditOperation("return 1", "return 2", context_before="def b():\n    ")
        apply_edits(path, [op])

        assert path.read_text() == "def a():\n    return 1\n\ndef b():\n    return 2\n"

    def test_nth_occurrence(self, temp_dir: Path) -> None:
        path = temp_dir / "a.txt"
        path.write_text("a a a")

        apply_edits(path, [EditOperation("a", "b", nth=2)])

        assert path.read_text() == "a b a"

    def test_crlf_preserved(self, temp_dir: Path) -> None:
        path = temp_dir / "a.txt"
        path.write_bytes(b"one\r\ntwo\r\n")

        apply_edits(path, [first("two", "three")])

        assert path.read_bytes() == b"one\r\nthree\r\n"

    def test_report_contents(self, temp_dir: Path) -> None:
        path = temp_dir / "a.txt"
        path.write_text("line1\n")

        report = apply_edits(path, [first("line1", "line1\nline2")])
        text = report.render()

        assert report.line_delta == 1
        assert "Successfully applied 1 edit(s)" in text
        assert "+line2" in report.diff_preview

    def test_no_temp_files_left(self, temp_dir: Path) -> None:
        path = temp_dir / "a.txt"
        path.write_text("hello")

        apply_edits(path, [first("hello", "bye")])

        assert sorted(p.name for p in temp_dir.iterdir()) == ["a.txt"]


class TestReject:
    """Failed validation leaves the file untouched."""

    def test_no_match_rejected(self, temp_dir: Path) -> None:
        path = temp_dir / "a.txt"
        path.write_text("foo bar")

        txn = EditTransaction(path, [EditOperation("qux", "quux")])
        with pytest.raises(NoMatch) as exc_info:
            txn.execute()

        assert txn.state == TransactionState.REJECTED
        assert exc_info.value.kind == ErrorKind.NO_MATCH
        assert exc_info.value.step == "edit #1"
        assert path.read_text() == "foo bar"

    def test_failure_in_later_edit_keeps_pre_image(self, temp_dir: Path) -> None:
        path = temp_dir / "a.txt"
        path.write_text("foo bar")

        with pytest.raises(NoMatch):
            apply_edits(path, [first("foo", "FOO"), first("missing", "x")])

        assert path.read_text() == "foo bar"

    def test_ambiguous_match(self, temp_dir: Path) -> None:
        path = temp_dir / "a.txt"
        path.write_text("x\nx\n")

        with pytest.raises(AmbiguousMatch, match="lines 1, 2"):
            apply_edits(path, [EditOperation("x", "y")])

        assert path.read_text() == "x\nx\n"

    def test_nth_out_of_range(self, temp_dir: Path) -> None:
        path = temp_dir / "a.txt"
        path.write_text("a a")

        with pytest.raises(NoMatch):
            apply_edits(path, [EditOperation("a", "b", nth=3)])

    @pytest.mark.parametrize("operations", [
        [],
        [EditOperation("", "x")],
        [EditOperation("same", "same")],
        [first("a", "b")] * 51,
    ])
    def test_structural_checks(self, temp_dir: Path, operations: list[EditOperation]) -> None:
        path = temp_dir / "a.txt"
        path.write_text("a")

        txn = EditTransaction(path, operations)
        with pytest.raises(InvalidArguments):
            txn.execute()

        assert txn.state == TransactionState.REJECTED
        assert path.read_text() == "a"

    def test_missing_file(self, temp_dir: Path) -> None:
        with pytest.raises(IOFailure, match="does not exist"):
            apply_edits(temp_dir / "nope.txt", [first("a", "b")])


class TestRollback:
    """Failures after validation roll back without touching the file."""

    def test_external_modification_detected(self, temp_dir: Path) -> None:
        path = temp_dir / "a.txt"
        path.write_text("original")

        txn = EditTransaction(path, [first("original", "edited")])
        original_validate = txn.validate

        def validate_then_modify() -> str:
            content = original_validate()
            path.write_text("changed by someone else")
            return content

        txn.validate = validate_then_modify  # type: ignore[method-assign]

        with pytest.raises(IOFailure, match="rolled back"):
            txn.execute()

        assert txn.state == TransactionState.ROLLED_BACK
        assert path.read_text() == "changed by someone else"

    def test_write_failure(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = temp_dir / "a.txt"
        path.write_text("original")

        def failing_replace(src: str, dst: object) -> None:
            raise OSError("disk full")

        monkeypatch.setattr(edits.os, "replace", failing_replace)

        txn = EditTransaction(path, [first("original", "edited")])
        with pytest.raises(IOFailure, match="disk full"):
            txn.execute()

        assert txn.state == TransactionState.ROLLED_BACK
        assert path.read_text() == "original"
        assert [p.name for p in temp_dir.iterdir()] == ["a.txt"]

    def test_pre_image_released(self, temp_dir: Path) -> None:
        path = temp_dir / "a.txt"
        path.write_text("abc")

        txn = EditTransaction(path, [first("abc", "def")])
        txn.execute()

        assert txn.pre_image is None


class TestDiffPreview:
    def test_preview_is_bounded(self) -> None:
        before = "\n".join(str(i) for i in range(200))
        after = "\n".join(str(i * 2) for i in range(200))

        preview = diff_preview(Path("f.txt"), before, after, max_lines=10)

        assert len(preview.splitlines()) == 11
        assert "more diff lines not shown" in preview


def test_file_mode_preserved(tmp_path: Path) -> None:
    path = tmp_path / "script.sh"
    path.write_text("echo hi\n")
    os.chmod(path, 0o755)

    apply_edits(path, [first("hi", "bye")])

    assert os.stat(path).st_mode & 0o777 == 0o755

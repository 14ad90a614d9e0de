"""
Unit tests for DiffParser.

Uses fixture data that represents real git diff output formats.
"""

import pytest

from patchpilot.errors import DiffTooLargeError
from patchpilot.review.diff_parser import (
    DiffParser,
    extract_changed_lines,
    parse_diff,
    reconstruct_file_diff,
)
from patchpilot.review.models import ChangeType, FileStatus


# =============================================================================
# FIXTURES: Sample git diff outputs
# =============================================================================

MODIFIED_DIFF = """\
diff --git a/src/utils.py b/src/utils.py
index 1234567..abcdefg 100644
--- a/src/utils.py
+++ b/src/utils.py
@@ -10,3 +10,4 @@ def helper():
 def new_function():
-    return False
+    # Added a comment
+    print("hello")
     return True
"""

NEW_FILE_DIFF = """\
diff --git a/src/new.ts b/src/new.ts
new file mode 100644
index 0000000..1234567
--- /dev/null
+++ b/src/new.ts
@@ -0,0 +1,3 @@
+export function hello() {
+  return "hi";
+}
"""

DELETED_FILE_DIFF = """\
diff --git a/removed.py b/removed.py
deleted file mode 100644
index 1234567..0000000
--- a/removed.py
+++ /dev/null
@@ -1,2 +0,0 @@
-def gone():
-    pass
"""

RENAMED_FILE_DIFF = """\
diff --git a/old_name.py b/new_name.py
similarity index 95%
rename from old_name.py
rename to new_name.py
index 1234567..abcdefg 100644
--- a/old_name.py
+++ b/new_name.py
@@ -1,2 +1,3 @@
 def foo():
+    # Added
     pass
"""

BINARY_DIFF = """\
diff --git a/assets/logo.png b/assets/logo.png
index 1234567..abcdefg 100644
Binary files a/assets/logo.png and b/assets/logo.png differ
"""

MULTI_HUNK_DIFF = """\
diff --git a/app.go b/app.go
index 1234567..abcdefg 100644
--- a/app.go
+++ b/app.go
@@ -1,3 +1,3 @@ package main
 import "fmt"
-var x = 1
+var x = 2
 func main() {}
@@ -20 +20,2 @@
 // end
+// more
\\ No newline at end of file
"""


# =============================================================================
# Parsing
# =============================================================================


class TestParse:
    """Tests for DiffParser.parse."""

    @pytest.fixture
    def parser(self) -> DiffParser:
        return DiffParser()

    def test_modified_file(self, parser: DiffParser) -> None:
        """Two added and one deleted line in one modified file."""
        result = parser.parse(MODIFIED_DIFF)

        assert result.total_files == 1
        assert result.total_additions == 2
        assert result.total_deletions == 1

        file = result.files[0]
        assert file.status is FileStatus.MODIFIED
        assert file.old_path == "src/utils.py"
        assert file.new_path == "src/utils.py"
        assert file.additions == 2
        assert file.deletions == 1

    def test_hunk_header(self, parser: DiffParser) -> None:
        """Hunk header fields and section text are captured."""
        hunk = parser.parse(MODIFIED_DIFF).files[0].hunks[0]

        assert (hunk.old_start, hunk.old_lines) == (10, 3)
        assert (hunk.new_start, hunk.new_lines) == (10, 4)
        assert hunk.section == "def helper():"

    def test_line_numbers(self, parser: DiffParser) -> None:
        """Counters advance per side for each change type."""
        changes = parser.parse(MODIFIED_DIFF).files[0].hunks[0].changes

        assert [c.type for c in changes] == [
            ChangeType.CONTEXT,
            ChangeType.DELETE,
            ChangeType.ADD,
            ChangeType.ADD,
            ChangeType.CONTEXT,
        ]
        assert changes[0].line_number == 10
        assert changes[0].old_line_number == 10
        assert changes[1].old_line_number == 11
        assert changes[2].line_number == 11
        assert changes[3].line_number == 12
        assert changes[4].line_number == 13
        assert changes[4].old_line_number == 12
        assert changes[2].old_line_number is None

    def test_new_file(self, parser: DiffParser) -> None:
        file = parser.parse(NEW_FILE_DIFF).files[0]

        assert file.status is FileStatus.ADDED
        assert file.additions == 3
        assert file.deletions == 0

    def test_deleted_file(self, parser: DiffParser) -> None:
        file = parser.parse(DELETED_FILE_DIFF).files[0]

        assert file.status is FileStatus.DELETED
        assert file.additions == 0
        assert file.deletions == 2

    def test_renamed_file(self, parser: DiffParser) -> None:
        file = parser.parse(RENAMED_FILE_DIFF).files[0]

        assert file.status is FileStatus.RENAMED
        assert file.old_path == "old_name.py"
        assert file.new_path == "new_name.py"
        assert file.additions == 1

    def test_binary_file_has_no_hunks(self, parser: DiffParser) -> None:
        file = parser.parse(BINARY_DIFF).files[0]

        assert file.is_binary
        assert file.hunks == []

    def test_multiple_hunks_and_omitted_counts(self, parser: DiffParser) -> None:
        """Omitted hunk counts default to 1; `\\ No newline` is skipped."""
        file = parser.parse(MULTI_HUNK_DIFF).files[0]

        assert len(file.hunks) == 2
        second = file.hunks[1]
        assert second.old_lines == 1
        assert second.new_lines == 2
        assert len(second.changes) == 2
        assert second.changes[1].content == "// more"

    def test_multiple_files(self, parser: DiffParser) -> None:
        result = parser.parse(MODIFIED_DIFF + NEW_FILE_DIFF + BINARY_DIFF)

        assert result.total_files == 3
        assert result.total_additions == 5
        assert [f.new_path for f in result.files] == [
            "src/utils.py",
            "src/new.ts",
            "assets/logo.png",
        ]

    def test_empty_input(self, parser: DiffParser) -> None:
        result = parser.parse("")

        assert result.files == []
        assert result.total_additions == 0

    def test_garbage_is_tolerated(self, parser: DiffParser) -> None:
        """Lines before any file header and unparsable hunks are skipped."""
        diff = "random preamble\n+not a change\n" + MODIFIED_DIFF + "@@ broken @@\n+stray\n"
        result = parser.parse(diff)

        assert result.total_files == 1
        assert result.total_additions == 2

    def test_empty_line_inside_hunk_is_context(self, parser: DiffParser) -> None:
        """Editors strip the leading space of blank context lines."""
        diff = (
            "diff --git a/a.py b/a.py\n"
            "--- a/a.py\n"
            "+++ b/a.py\n"
            "@@ -1,3 +1,4 @@\n"
            " x = 1\n"
            "\n"
            "+y = 2\n"
            " z = 3\n"
        )
        changes = parser.parse(diff).files[0].hunks[0].changes

        assert [c.type for c in changes] == [
            ChangeType.CONTEXT,
            ChangeType.CONTEXT,
            ChangeType.ADD,
            ChangeType.CONTEXT,
        ]
        assert changes[3].line_number == 4

    def test_marker_lookalikes_inside_hunk_are_content(self, parser: DiffParser) -> None:
        """`---` and `+++` lines count as changes while the hunk expects lines."""
        diff = (
            "diff --git a/notes.md b/notes.md\n"
            "--- a/notes.md\n"
            "+++ b/notes.md\n"
            "@@ -1,1 +1,1 @@\n"
            "--- old rule\n"
            "+++ new rule\n"
        )
        file = parser.parse(diff).files[0]

        assert file.deletions == 1
        assert file.additions == 1
        assert file.hunks[0].changes[0].content == "-- old rule"
        assert file.hunks[0].changes[1].content == "++ new rule"

    def test_crlf_line_endings(self, parser: DiffParser) -> None:
        result = parser.parse(MODIFIED_DIFF.replace("\n", "\r\n"))

        assert result.total_additions == 2
        assert result.files[0].hunks[0].changes[2].content == "    # Added a comment"

    def test_counts_match_change_types(self, parser: DiffParser) -> None:
        """additions/deletions always equal the typed change counts."""
        for diff in (MODIFIED_DIFF, NEW_FILE_DIFF, DELETED_FILE_DIFF, MULTI_HUNK_DIFF):
            for file in parser.parse(diff).files:
                changes = [c for h in file.hunks for c in h.changes]
                assert file.additions == sum(c.type is ChangeType.ADD for c in changes)
                assert file.deletions == sum(c.type is ChangeType.DELETE for c in changes)


class TestInputCap:
    """Tests for the max_diff_bytes guard."""

    def test_rejects_oversized_input(self) -> None:
        parser = DiffParser(max_diff_bytes=100)

        with pytest.raises(DiffTooLargeError) as exc_info:
            parser.parse(MODIFIED_DIFF)

        assert exc_info.value.limit == 100
        assert exc_info.value.size == len(MODIFIED_DIFF.encode("utf-8"))

    def test_measures_utf8_bytes(self) -> None:
        text = "é" * 60  # 120 bytes, 60 characters
        with pytest.raises(DiffTooLargeError):
            DiffParser(max_diff_bytes=100).parse(text)

    def test_accepts_input_at_limit(self) -> None:
        size = len(MODIFIED_DIFF.encode("utf-8"))
        result = DiffParser(max_diff_bytes=size).parse(MODIFIED_DIFF)

        assert result.total_files == 1


# =============================================================================
# Reconstruction
# =============================================================================


class TestReconstruct:
    """Tests for DiffParser.reconstruct."""

    def test_new_file_markers(self) -> None:
        text = reconstruct_file_diff(parse_diff(NEW_FILE_DIFF).files[0])

        assert "new file mode" in text
        assert "--- /dev/null" in text
        assert "+++ b/src/new.ts" in text

    def test_deleted_file_markers(self) -> None:
        text = reconstruct_file_diff(parse_diff(DELETED_FILE_DIFF).files[0])

        assert "deleted file mode" in text
        assert "+++ /dev/null" in text

    def test_rename_markers(self) -> None:
        text = reconstruct_file_diff(parse_diff(RENAMED_FILE_DIFF).files[0])

        assert "rename from old_name.py" in text
        assert "rename to new_name.py" in text

    def test_binary_placeholder(self) -> None:
        text = reconstruct_file_diff(parse_diff(BINARY_DIFF).files[0])

        assert text == "Binary file assets/logo.png"

    def test_hunk_headers_rebuilt(self) -> None:
        text = reconstruct_file_diff(parse_diff(MODIFIED_DIFF).files[0])

        assert "@@ -10,3 +10,4 @@ def helper():" in text
        assert "+    print(\"hello\")" in text

    @pytest.mark.parametrize(
        "diff",
        [MODIFIED_DIFF, NEW_FILE_DIFF, DELETED_FILE_DIFF, RENAMED_FILE_DIFF, MULTI_HUNK_DIFF],
    )
    def test_reparse_preserves_counts(self, diff: str) -> None:
        """Re-parsing reconstructed text yields the same change counts."""
        original = parse_diff(diff).files[0]
        reparsed = parse_diff(reconstruct_file_diff(original)).files[0]

        assert reparsed.additions == original.additions
        assert reparsed.deletions == original.deletions
        assert reparsed.status is original.status


class TestExtractChangedLines:
    """Tests for extract_changed_lines."""

    def test_lists_additions_and_deletions(self) -> None:
        lines = extract_changed_lines(parse_diff(MODIFIED_DIFF).files[0])

        assert lines.additions == [
            "src/utils.py:11:     # Added a comment",
            "src/utils.py:12:     print(\"hello\")",
        ]
        assert lines.deletions == ["src/utils.py:11:     return False"]

    def test_binary_file_has_nothing(self) -> None:
        lines = extract_changed_lines(parse_diff(BINARY_DIFF).files[0])

        assert lines.additions == []
        assert lines.deletions == []

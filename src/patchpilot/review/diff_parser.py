"""
Unified Diff Parser

Parses unified diff text into per-file, per-hunk, per-line change records and
rebuilds diff text from them for AI consumption.
"""

import re

from .models import (
    ChangedLines,
    ChangeType,
    DiffChange,
    DiffFile,
    DiffHunk,
    FileStatus,
    ParsedDiff,
)
from ..errors import DiffTooLargeError


class DiffParser:
    """Parse unified diff text into structured data."""

    FILE_HEADER = re.compile(r"^diff --git a/(.+) b/(.+)$")
    HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@ ?(.*)$")
    NEW_FILE = re.compile(r"^new file mode")
    DELETED_FILE = re.compile(r"^deleted file mode")
    RENAME = re.compile(r"^rename (from|to) (.+)$")
    BINARY_FILE = re.compile(r"^Binary files |GIT binary patch")

    # Extended header lines that carry nothing we keep
    IGNORED_HEADERS = (
        "index ",
        "old mode",
        "new mode",
        "similarity index",
        "dissimilarity index",
        "copy from",
        "copy to",
    )

    def __init__(self, max_diff_bytes: int | None = None):
        """
        Initialize parser.

        Args:
            max_diff_bytes: Reject input larger than this many UTF-8 bytes
        """
        self.max_diff_bytes = max_diff_bytes

    def parse(self, diff_text: str) -> ParsedDiff:
        """Parse full diff text into a ParsedDiff.

        Malformed or out-of-context lines are skipped, never fatal.

        Raises:
            DiffTooLargeError: If the input exceeds max_diff_bytes
        """
        if self.max_diff_bytes is not None:
            size = len(diff_text.encode("utf-8"))
            if size > self.max_diff_bytes:
                raise DiffTooLargeError(size, self.max_diff_bytes)

        files: list[DiffFile] = []
        current_file: DiffFile | None = None
        current_hunk: DiffHunk | None = None
        old_line = new_line = 0
        old_remaining = new_remaining = 0

        for line in diff_text.split("\n"):
            line = line.rstrip("\r")

            file_match = self.FILE_HEADER.match(line)
            if file_match:
                old_path, new_path = file_match.groups()
                current_file = DiffFile(old_path=old_path, new_path=new_path)
                files.append(current_file)
                current_hunk = None
                old_remaining = new_remaining = 0
                continue

            if current_file is None:
                continue

            in_body = current_hunk is not None and (old_remaining > 0 or new_remaining > 0)

            if not in_body:
                if self.NEW_FILE.match(line):
                    current_file.status = FileStatus.ADDED
                    continue
                if self.DELETED_FILE.match(line):
                    current_file.status = FileStatus.DELETED
                    continue
                rename = self.RENAME.match(line)
                if rename:
                    current_file.status = FileStatus.RENAMED
                    if rename.group(1) == "from":
                        current_file.old_path = rename.group(2)
                    else:
                        current_file.new_path = rename.group(2)
                    continue
                if self.BINARY_FILE.search(line):
                    current_file.is_binary = True
                    continue
                if line.startswith("---") or line.startswith("+++"):
                    continue
                if line.startswith(self.IGNORED_HEADERS):
                    continue

            if line.startswith("@@"):
                hunk_match = self.HUNK_HEADER.match(line)
                if hunk_match is None:
                    current_hunk = None
                    continue
                old_line = int(hunk_match.group(1))
                new_line = int(hunk_match.group(3))
                current_hunk = DiffHunk(
                    old_start=old_line,
                    old_lines=int(hunk_match.group(2) or "1"),
                    new_start=new_line,
                    new_lines=int(hunk_match.group(4) or "1"),
                    section=hunk_match.group(5).strip(),
                )
                old_remaining = current_hunk.old_lines
                new_remaining = current_hunk.new_lines
                if not current_file.is_binary:
                    current_file.hunks.append(current_hunk)
                continue

            if current_hunk is None or current_file.is_binary:
                continue

            if line.startswith("+"):
                current_hunk.changes.append(
                    DiffChange(type=ChangeType.ADD, line_number=new_line, content=line[1:])
                )
                new_line += 1
                new_remaining -= 1
            elif line.startswith("-"):
                current_hunk.changes.append(
                    DiffChange(
                        type=ChangeType.DELETE,
                        line_number=new_line,
                        old_line_number=old_line,
                        content=line[1:],
                    )
                )
                old_line += 1
                old_remaining -= 1
            elif line.startswith(" ") or (
                line == "" and old_remaining > 0 and new_remaining > 0
            ):
                current_hunk.changes.append(
                    DiffChange(
                        type=ChangeType.CONTEXT,
                        line_number=new_line,
                        old_line_number=old_line,
                        content=line[1:],
                    )
                )
                new_line += 1
                old_line += 1
                new_remaining -= 1
                old_remaining -= 1
            # Anything else ("\ No newline at end of file", stray text) is skipped

        return ParsedDiff(files=files)

    def reconstruct(self, file: DiffFile) -> str:
        """Rebuild diff text for a single file.

        The output is valid enough for AI consumption and for re-parsing; it is
        not guaranteed to match the original bytes.
        """
        if file.is_binary:
            return f"Binary file {file.new_path}"

        parts = [f"diff --git a/{file.old_path} b/{file.new_path}"]

        if file.status is FileStatus.ADDED:
            parts.extend([
                "new file mode 100644",
                "--- /dev/null",
                f"+++ b/{file.new_path}",
            ])
        elif file.status is FileStatus.DELETED:
            parts.extend([
                "deleted file mode 100644",
                f"--- a/{file.old_path}",
                "+++ /dev/null",
            ])
        else:
            if file.status is FileStatus.RENAMED:
                parts.extend([
                    f"rename from {file.old_path}",
                    f"rename to {file.new_path}",
                ])
            parts.extend([
                f"--- a/{file.old_path}",
                f"+++ b/{file.new_path}",
            ])

        prefixes = {ChangeType.ADD: "+", ChangeType.DELETE: "-", ChangeType.CONTEXT: " "}
        for hunk in file.hunks:
            parts.append(hunk.header)
            for change in hunk.changes:
                parts.append(f"{prefixes[change.type]}{change.content}")

        return "\n".join(parts) + "\n"

    def extract_changed_lines(self, file: DiffFile) -> ChangedLines:
        """List added and deleted lines as `path:line: content` strings."""
        result = ChangedLines()

        for hunk in file.hunks:
            for change in hunk.changes:
                if change.type is ChangeType.ADD:
                    result.additions.append(
                        f"{file.new_path}:{change.line_number}: {change.content}"
                    )
                elif change.type is ChangeType.DELETE:
                    result.deletions.append(
                        f"{file.old_path}:{change.old_line_number or 0}: {change.content}"
                    )

        return result


_default_parser = DiffParser()


def parse_diff(diff_text: str) -> ParsedDiff:
    """Parse diff text with no input cap."""
    return _default_parser.parse(diff_text)


def reconstruct_file_diff(file: DiffFile) -> str:
    """Rebuild diff text for a single file."""
    return _default_parser.reconstruct(file)


def extract_changed_lines(file: DiffFile) -> ChangedLines:
    """List a file's added and deleted lines."""
    return _default_parser.extract_changed_lines(file)

"""
File Filter

Drops files that should never reach the AI reviewer, enforces caller include
and exclude rules, and ranks the survivors for review.
"""

import re
from functools import lru_cache

from .models import DiffFile, FilterConfig, ParsedDiff
from ..errors import InvalidPatternError


DEFAULT_EXCLUSIONS: tuple[str, ...] = (
    # Dependencies
    "**/node_modules/**",
    "**/vendor/**",
    "**/bower_components/**",
    # Build outputs
    "**/dist/**",
    "**/build/**",
    "**/out/**",
    "**/.next/**",
    "**/.nuxt/**",
    # Lock files
    "**/package-lock.json",
    "**/yarn.lock",
    "**/pnpm-lock.yaml",
    "**/Gemfile.lock",
    "**/Cargo.lock",
    "**/poetry.lock",
    "**/composer.lock",
    # Generated files
    "**/*.min.js",
    "**/*.min.css",
    "**/*.map",
    "**/*.d.ts",
    "**/generated/**",
    "**/__generated__/**",
    # IDE/Editor
    "**/.idea/**",
    "**/.vscode/**",
    "**/.vs/**",
    "**/*.swp",
    "**/*.swo",
    # OS files
    "**/.DS_Store",
    "**/Thumbs.db",
    # Test snapshots
    "**/__snapshots__/**",
    "**/*.snap",
    # Documentation
    "**/docs/**/*.md",
    "**/CHANGELOG.md",
    "**/HISTORY.md",
    # Binary assets
    "**/*.png",
    "**/*.jpg",
    "**/*.jpeg",
    "**/*.gif",
    "**/*.ico",
    "**/*.svg",
    "**/*.woff",
    "**/*.woff2",
    "**/*.ttf",
    "**/*.eot",
    "**/*.pdf",
    "**/*.zip",
    "**/*.tar",
    "**/*.gz",
)

# Estimated bytes per changed line when enforcing max_file_size
BYTES_PER_LINE = 80

EXTENSION_LANGUAGES: dict[str, str] = {
    # JavaScript/TypeScript
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    # Web
    "html": "html",
    "htm": "html",
    "css": "css",
    "scss": "scss",
    "sass": "sass",
    "less": "less",
    "vue": "vue",
    "svelte": "svelte",
    # Backend
    "py": "python",
    "rb": "ruby",
    "php": "php",
    "java": "java",
    "kt": "kotlin",
    "scala": "scala",
    "go": "go",
    "rs": "rust",
    "cs": "csharp",
    "fs": "fsharp",
    "swift": "swift",
    # Systems
    "c": "c",
    "h": "c",
    "cpp": "cpp",
    "cc": "cpp",
    "hpp": "cpp",
    # Data/Config
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
    "toml": "toml",
    "xml": "xml",
    "sql": "sql",
    # Shell
    "sh": "shell",
    "bash": "shell",
    "zsh": "shell",
    # Other
    "md": "markdown",
    "txt": "text",
    "dockerfile": "dockerfile",
}

SOURCE_LANGUAGES = frozenset({"typescript", "javascript", "python", "java", "go", "rust"})
CONFIG_LANGUAGES = frozenset({"json", "yaml", "toml"})

SOURCE_LANGUAGE_BONUS = 50
TEST_PATH_PENALTY = 20
CONFIG_PENALTY = 30
MAX_SIZE_SCORE = 100


# =============================================================================
# Glob matching
# =============================================================================


def _expand_braces(pattern: str) -> list[str]:
    """Expand the first top-level `{a,b}` group, recursively."""
    depth = 0
    start = None
    commas: list[int] = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\":
            i += 2
            continue
        if char == "{":
            if depth == 0:
                start = i
                commas = []
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start is not None:
                if not commas:
                    start = None
                    i += 1
                    continue
                prefix, suffix = pattern[:start], pattern[i + 1 :]
                bounds = [start, *commas, i]
                results: list[str] = []
                for left, right in zip(bounds, bounds[1:]):
                    option = pattern[left + 1 : right]
                    results.extend(_expand_braces(prefix + option + suffix))
                return results
        elif char == "," and depth == 1:
            commas.append(i)
        i += 1
    return [pattern]


def _translate_segment(segment: str, pattern: str) -> str:
    """Translate one path segment of a glob into a regex fragment."""
    out: list[str] = []
    i = 0
    while i < len(segment):
        char = segment[i]
        if char == "*":
            while i + 1 < len(segment) and segment[i + 1] == "*":
                i += 1
            out.append("[^/]*")
        elif char == "?":
            out.append("[^/]")
        elif char == "[":
            end = i + 1
            if end < len(segment) and segment[end] in "!^":
                end += 1
            if end < len(segment) and segment[end] == "]":
                end += 1
            while end < len(segment) and segment[end] != "]":
                end += 1
            if end >= len(segment):
                raise InvalidPatternError(pattern, "unterminated character class")
            body = segment[i + 1 : end]
            if body[0] in "!^":
                body = "^" + body[1:]
            out.append("[" + body.replace("\\", "\\\\") + "]")
            i = end
        elif char == "\\" and i + 1 < len(segment):
            i += 1
            out.append(re.escape(segment[i]))
        else:
            out.append(re.escape(char))
        i += 1
    return "".join(out)


def _translate(pattern: str) -> str:
    segments = pattern.split("/")
    last = len(segments) - 1
    out: list[str] = []
    for index, segment in enumerate(segments):
        if segment == "**":
            if index == last:
                out.append(".*")
            else:
                out.append("(?:.*/)?")
        else:
            out.append(_translate_segment(segment, pattern))
            if index != last:
                out.append("/")
    return "".join(out)


@lru_cache(maxsize=512)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Compile a glob into a regex.

    Supports `**` across directories, `*`, `?`, character classes and
    `{a,b}` alternatives. Dotfiles are matched like any other name.

    Raises:
        InvalidPatternError: For empty patterns or unterminated classes
    """
    if not pattern:
        raise InvalidPatternError(pattern, "empty pattern")
    alternatives = [_translate(p) for p in _expand_braces(pattern)]
    try:
        return re.compile(r"\A(?:" + "|".join(alternatives) + r")\Z")
    except re.error as e:
        raise InvalidPatternError(pattern, str(e)) from e


def glob_match(path: str, pattern: str) -> bool:
    """Check a path against a single glob pattern."""
    return compile_glob(pattern).match(path) is not None


def matches_patterns(path: str, patterns: list[str] | tuple[str, ...]) -> bool:
    """Check if a path matches any pattern. `!pattern` matches paths it does not."""
    for pattern in patterns:
        if pattern.startswith("!"):
            if not glob_match(path, pattern[1:]):
                return True
        elif glob_match(path, pattern):
            return True
    return False


# =============================================================================
# Language and priority
# =============================================================================


def get_file_extension(path: str) -> str | None:
    """Lower-cased extension without the dot."""
    match = re.search(r"\.([^./]+)$", path)
    return match.group(1).lower() if match else None


def get_language(path: str) -> str:
    """Infer the programming language from a path."""
    ext = get_file_extension(path)
    if ext is None:
        if path.rsplit("/", 1)[-1].lower() == "dockerfile":
            return "dockerfile"
        return "unknown"
    return EXTENSION_LANGUAGES.get(ext, "unknown")


def calculate_file_priority(file: DiffFile) -> int:
    """Score a file for review order. Higher is reviewed first."""
    priority = min(file.total_lines_changed, MAX_SIZE_SCORE)

    language = get_language(file.new_path)
    if language in SOURCE_LANGUAGES:
        priority += SOURCE_LANGUAGE_BONUS

    if "test" in file.new_path or "spec" in file.new_path:
        priority -= TEST_PATH_PENALTY

    if language in CONFIG_LANGUAGES:
        priority -= CONFIG_PENALTY

    return priority


def group_files_by_type(files: list[DiffFile]) -> dict[str, list[DiffFile]]:
    """Group files by extension, `other` when there is none."""
    groups: dict[str, list[DiffFile]] = {}
    for file in files:
        groups.setdefault(get_file_extension(file.new_path) or "other", []).append(file)
    return groups


class FileFilter:
    """Select the files of a diff that are worth reviewing."""

    def __init__(self, default_exclusions: tuple[str, ...] = DEFAULT_EXCLUSIONS):
        self.default_exclusions = default_exclusions

    def filter(self, diff: ParsedDiff, config: FilterConfig | None = None) -> ParsedDiff:
        """Apply exclusions, includes and size limits.

        Binary files and default exclusions are always dropped. Totals of the
        returned diff are recomputed from the surviving files.

        Raises:
            InvalidPatternError: If any configured pattern is malformed
        """
        config = config or FilterConfig()
        exclusions = [*self.default_exclusions, *config.exclude]

        # Compile everything up front so a bad pattern fails even on empty diffs
        for pattern in [*exclusions, *config.include]:
            compile_glob(pattern[1:] if pattern.startswith("!") else pattern)

        kept: list[DiffFile] = []
        for file in diff.files:
            if self.is_excluded(file, exclusions, config):
                continue
            kept.append(file)

        if config.max_files and len(kept) > config.max_files:
            kept = sorted(kept, key=lambda f: f.total_lines_changed, reverse=True)
            kept = kept[: config.max_files]

        return ParsedDiff(files=kept)

    def is_excluded(
        self, file: DiffFile, exclusions: list[str], config: FilterConfig
    ) -> bool:
        """Decide whether a single file is dropped."""
        if file.is_binary:
            return True

        path = file.new_path
        if matches_patterns(path, exclusions):
            return True

        if config.include and not matches_patterns(path, config.include):
            return True

        if config.max_file_size:
            estimated_size = file.total_lines_changed * BYTES_PER_LINE
            if estimated_size > config.max_file_size:
                return True

        return False

"""
Path Resolver

Expands declared script entries (literal paths or glob patterns) against a
script source, filters them through the exclusion globs and fingerprints the
survivors.

Glob semantics: `**` matches across path separators, `*` and `?` match within
a single segment, matching is case-sensitive and applied to the path relative
to the project root. Each pattern is translated once into an anchored regex
with pathspec (gitwildmatch), without the branch that makes a pattern naming a
directory match everything beneath it.
"""

import logging
import re
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from pathspec.patterns.gitwildmatch import GitWildMatchPattern

from pgdeploy.domain.errors import UnresolvedPathError, ValidationError
from pgdeploy.models import Phase, ResolvedScript, normalize_script_path

from .sources import FileSystemScriptSource, ScriptSource, fingerprint_bytes

logger = logging.getLogger(__name__)

GLOB_CHARACTERS = frozenset("*?[")
DEFAULT_FINGERPRINT_WORKERS = 4

# Optional trailing "/..." pathspec appends to a pattern that does not end in "**"
_DESCENDANT_BRANCH = re.compile(r"\(\?:(?:\(\?P<\w+>/\)|/)\.\*\)\?\$$")


def is_glob(entry: str) -> bool:
    """Return True if a declared entry is a glob pattern rather than a literal path."""
    return any(char in GLOB_CHARACTERS for char in entry)


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate one glob into a regex matching whole root-relative paths

    Raises:
        ValidationError: If the pattern cannot be translated
    """
    try:
        regex, include = GitWildMatchPattern.pattern_to_regex(f"/{pattern.lstrip('/')}")
    except ValueError as e:
        raise ValidationError(f"Invalid glob pattern {pattern}: {e}", code="invalid_glob") from e
    if regex is None or include is False:
        raise ValidationError(f"Invalid glob pattern: {pattern}", code="invalid_glob")
    return re.compile(_DESCENDANT_BRANCH.sub("$", regex))


class GlobSet:
    """Glob patterns compiled once; a path matches if any pattern matches it whole"""

    def __init__(self, patterns: Iterable[str]) -> None:
        self.patterns = tuple(pattern for pattern in patterns if pattern)
        self._regexes = [glob_to_regex(pattern) for pattern in self.patterns]

    def matches(self, path: str) -> bool:
        return any(regex.match(path) for regex in self._regexes)


def compile_globs(patterns: Iterable[str]) -> GlobSet:
    """Compile root-anchored glob patterns into one matcher."""
    return GlobSet(patterns)


class ExclusionMatcher:
    """Compiled exclusion predicate, built once per run

    Matching zero files is never an error: exclusion globs may be written
    ahead of the files they are meant to filter.
    """

    def __init__(self, patterns: Iterable[str]) -> None:
        self._globs = compile_globs(patterns)
        self.patterns = self._globs.patterns
        logger.debug("Exclusion matcher compiled with %d patterns", len(self.patterns))

    def matches(self, path: str) -> bool:
        return self._globs.matches(path)

    def __call__(self, path: str) -> bool:
        return self.matches(path)


def _expand(entry: str, source: ScriptSource) -> list[str]:
    globs = compile_globs([entry])
    return sorted(path for path in source.list_files() if globs.matches(path))


def fingerprint_paths(
    paths: Sequence[str], source: ScriptSource, max_workers: int = DEFAULT_FINGERPRINT_WORKERS
) -> list[str]:
    """Fingerprint files concurrently; the result order matches `paths`.

    Reading and hashing is side-effect free, so it is the one part of a
    deployment allowed to run in parallel.
    """
    if not paths:
        return []

    def _fingerprint(path: str) -> str:
        return fingerprint_bytes(source.read_bytes(path))

    if max_workers <= 1 or len(paths) == 1:
        return [_fingerprint(path) for path in paths]
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="pgdeploy-fp") as pool:
        return list(pool.map(_fingerprint, paths))


def resolve(
    declared_paths: Sequence[str],
    exclude_globs: Iterable[str] | ExclusionMatcher,
    project_root: Path,
    phase: Phase = Phase.PRE,
    *,
    source: ScriptSource | None = None,
    max_workers: int = DEFAULT_FINGERPRINT_WORKERS,
) -> list[ResolvedScript]:
    """Resolve declared entries into an ordered, deduplicated script sequence

    Literal entries keep their declared order; entries expanded from a glob
    are ordered lexicographically. A file produced by more than one entry is
    kept at its first position.

    Args:
        declared_paths: Declared script entries for one phase
        exclude_globs: Exclusion patterns or a pre-compiled matcher
        project_root: Root every path is relative to
        phase: Phase tag for the resolved scripts
        source: Script source override (default: the file system at project_root)
        max_workers: Thread pool size for fingerprinting

    Returns:
        Resolved scripts in execution order

    Raises:
        ValidationError: If an entry is not a valid relative path
        UnresolvedPathError: If literal entries do not exist on disk
    """
    matcher = (
        exclude_globs
        if isinstance(exclude_globs, ExclusionMatcher)
        else ExclusionMatcher(exclude_globs)
    )
    source = source or FileSystemScriptSource(project_root)

    ordered: list[str] = []
    seen: set[str] = set()
    missing: list[str] = []

    for entry in declared_paths:
        try:
            normalized = normalize_script_path(entry)
        except ValueError as e:
            raise ValidationError(str(e), code="invalid_script_path") from e

        if is_glob(normalized):
            candidates = _expand(normalized, source)
            if not candidates:
                logger.debug("Glob %s matched no files", normalized)
        elif source.is_file(normalized):
            candidates = [normalized]
        else:
            missing.append(normalized)
            continue

        for path in candidates:
            if matcher.matches(path):
                logger.debug("Excluded %s", path)
                continue
            if path in seen:
                continue
            seen.add(path)
            ordered.append(path)

    if missing:
        raise UnresolvedPathError(
            "Declared script paths not found: " + ", ".join(missing),
            paths=tuple(missing),
        )

    fingerprints = fingerprint_paths(ordered, source, max_workers=max_workers)
    logger.debug("Resolved %d %s scripts", len(ordered), phase.value)
    return [
        ResolvedScript(
            path=path,
            phase=phase,
            fingerprint=fingerprint,
            absolute_path=source.absolute(path),
        )
        for path, fingerprint in zip(ordered, fingerprints, strict=True)
    ]

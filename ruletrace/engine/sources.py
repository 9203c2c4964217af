"""Input files: walking, glob selection, ignore files, remote specs and caching.

Paths handed to the rest of the engine are always relative to the project
root and use forward slashes.
"""

import logging
import os
import re
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Generic, TypeVar

import httpx

from ..exceptions import SourceFetchError

logger = logging.getLogger(__name__)

IGNORE_FILES = (".gitignore", ".ignore")
ALWAYS_SKIPPED = frozenset({".git"})
FETCH_TIMEOUT_S = 30.0

T = TypeVar("T")


# ============ GLOBS ============


@lru_cache(maxsize=512)
def glob_to_regex(pattern: str) -> re.Pattern:
    """Translate a path glob to an anchored regex.

    ``**`` crosses directories, ``*`` and ``?`` stay within one segment and
    ``[...]`` is a character class.
    """
    out = []
    i = 0
    size = len(pattern)
    while i < size:
        char = pattern[i]
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif char == "*":
            out.append("[^/]*")
            i += 1
        elif char == "?":
            out.append("[^/]")
            i += 1
        elif char == "[":
            close = pattern.find("]", i + 1)
            if close == -1:
                out.append(re.escape(char))
                i += 1
            else:
                body = pattern[i + 1 : close]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = close + 1
        else:
            out.append(re.escape(char))
            i += 1
    return re.compile("".join(out) + r"\Z")


def glob_match(pattern: str, path: str) -> bool:
    return glob_to_regex(pattern.lstrip("/")).match(path) is not None


def select_paths(paths: Iterable[str], include: Iterable[str], exclude: Iterable[str] = ()) -> list[str]:
    """Paths matching any include glob and no exclude glob, sorted."""
    include = list(include)
    exclude = list(exclude)
    return sorted(
        path
        for path in paths
        if any(glob_match(p, path) for p in include) and not any(glob_match(p, path) for p in exclude)
    )


def matches_selection(path: str, include: Iterable[str], exclude: Iterable[str] = ()) -> bool:
    return bool(select_paths([path], include, exclude))


# ============ IGNORE FILES ============


@dataclass(frozen=True)
class _IgnorePattern:
    regex: re.Pattern
    negated: bool
    directory_only: bool
    anchored: bool


class IgnoreRules:
    """Patterns from ``.gitignore`` / ``.ignore`` at the project root.

    Supports comments, ``!`` negation, trailing ``/`` for directories and
    leading or inner ``/`` for root-anchored patterns. The last matching
    pattern decides.
    """

    def __init__(self, lines: Iterable[str] = ()):
        self._patterns: list[_IgnorePattern] = []
        for raw in lines:
            line = raw.rstrip("\n").rstrip()
            if not line or line.startswith("#"):
                continue
            negated = line.startswith("!")
            if negated:
                line = line[1:]
            directory_only = line.endswith("/")
            line = line.rstrip("/")
            if not line:
                continue
            anchored = "/" in line
            self._patterns.append(
                _IgnorePattern(
                    regex=glob_to_regex(line.lstrip("/")),
                    negated=negated,
                    directory_only=directory_only,
                    anchored=anchored,
                )
            )

    @classmethod
    def load(cls, root: Path) -> "IgnoreRules":
        lines: list[str] = []
        for name in IGNORE_FILES:
            path = root / name
            if path.is_file():
                try:
                    lines.extend(path.read_text(encoding="utf-8").splitlines())
                except (OSError, UnicodeDecodeError) as e:
                    logger.warning(f"Could not read {path}: {e}")
        return cls(lines)

    def __len__(self) -> int:
        return len(self._patterns)

    def is_ignored(self, path: str, is_dir: bool = False) -> bool:
        ignored = False
        name = path.rsplit("/", 1)[-1]
        for pattern in self._patterns:
            if pattern.directory_only and not is_dir:
                continue
            target = path if pattern.anchored else name
            if pattern.regex.match(target):
                ignored = not pattern.negated
        return ignored

    def excludes(self, path: str) -> bool:
        """True when the file or any of its parent directories is ignored."""
        parts = path.split("/")
        for depth in range(1, len(parts)):
            if self.is_ignored("/".join(parts[:depth]), is_dir=True):
                return True
        return self.is_ignored(path)


def walk_project(root: Path, ignore: IgnoreRules | None = None) -> list[str]:
    """All files under ``root`` not excluded by ignore rules, as relative paths."""
    ignore = ignore if ignore is not None else IgnoreRules()
    found = []
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root).as_posix()
        prefix = "" if rel_dir == "." else rel_dir + "/"
        dirnames[:] = sorted(
            d
            for d in dirnames
            if d not in ALWAYS_SKIPPED and not ignore.is_ignored(prefix + d, is_dir=True)
        )
        for filename in filenames:
            rel = prefix + filename
            if not ignore.is_ignored(rel):
                found.append(rel)
    found.sort()
    return found


def relative_path(root: Path, path: str | Path) -> str | None:
    """``path`` relative to ``root`` in posix form, or None when outside."""
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = root / candidate
    try:
        rel = candidate.resolve(strict=False).relative_to(root.resolve(strict=False))
    except ValueError:
        return None
    rel_text = rel.as_posix()
    return None if rel_text == "." else rel_text


def is_skipped(path: str) -> bool:
    return any(part in ALWAYS_SKIPPED for part in path.split("/"))


# ============ REMOTE SPECS ============


def fetch_url(url: str, timeout: float = FETCH_TIMEOUT_S) -> str:
    """Download a remote spec document.

    Raises:
        SourceFetchError: on transport errors and non-2xx responses.
    """
    try:
        response = httpx.get(url, timeout=timeout, follow_redirects=True)
    except httpx.TimeoutException as e:
        raise SourceFetchError(f"Timed out fetching {url}") from e
    except httpx.RequestError as e:
        raise SourceFetchError(f"Could not fetch {url}: {e}") from e
    if response.status_code < 200 or response.status_code >= 300:
        raise SourceFetchError(f"Fetching {url} returned HTTP {response.status_code}")
    return response.text


# ============ OVERLAY & CACHE ============


class Overlay:
    """Unsaved editor buffers that take precedence over disk content."""

    def __init__(self):
        self._lock = threading.Lock()
        self._buffers: dict[str, bytes] = {}

    def set(self, path: str, content: str) -> None:
        with self._lock:
            self._buffers[path] = content.encode("utf-8")

    def discard(self, path: str) -> bool:
        with self._lock:
            return self._buffers.pop(path, None) is not None

    def get(self, path: str) -> bytes | None:
        with self._lock:
            return self._buffers.get(path)

    def paths(self) -> list[str]:
        with self._lock:
            return sorted(self._buffers)


def read_input(root: Path, path: str, overlay: Overlay | None = None) -> bytes | None:
    """Overlay content if present, else disk bytes, else None when unreadable."""
    if overlay is not None:
        buffered = overlay.get(path)
        if buffered is not None:
            return buffered
    try:
        return (root / path).read_bytes()
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning(f"Could not read {path}: {e}")
        return None


class BuildCache(Generic[T]):
    """Per-key build results tagged with the content digest they came from."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[object, tuple[str, T]] = {}

    def get(self, key: object, digest: str | None = None) -> T | None:
        """Cached value; when ``digest`` is given it must match the stored one."""
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or (digest is not None and entry[0] != digest):
            return None
        return entry[1]

    def lookup(self, key: object) -> tuple[str, T] | None:
        """``(digest, value)`` of the last entry for ``key``."""
        with self._lock:
            return self._entries.get(key)

    def put(self, key: object, digest: str, value: T) -> None:
        with self._lock:
            self._entries[key] = (digest, value)

    def discard(self, key: object) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def retain(self, keys: Iterable[object]) -> None:
        keep = set(keys)
        with self._lock:
            for key in [k for k in self._entries if k not in keep]:
                del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

"""
Note vault access: reading notes, front-matter updates, change detection.

The pipeline only depends on the ``Vault`` protocol. ``FileVault`` is the
implementation for a directory of markdown files; other hosts can supply
their own.
"""

import logging
import os
import re
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional, Protocol, runtime_checkable

import yaml

from .types import FRONTMATTER_PREFIX, FRONTMATTER_VERSION, Enhancement, iso_timestamp, utc_now

logger = logging.getLogger(__name__)

NOTE_EXTENSION = ".md"

_FRONTMATTER_BLOCK_RE = re.compile(r"\A---\r?\n(.*?)(?:\r?\n)?---[ \t]*(?:\r?\n|\Z)", re.DOTALL)

# clean_content patterns
_LEADING_FRONTMATTER_RE = re.compile(r"^---[\s\S]*?---\n?")
_EMBED_RE = re.compile(r"!\[\[.*?\]\]")
_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")


@dataclass(frozen=True)
class FileStat:
    """Creation and modification times in seconds since the epoch."""
    ctime: float
    mtime: float


@dataclass(frozen=True)
class ChangeEvent:
    """A vault change notification."""
    kind: str  # "created" | "modified" | "deleted"
    path: str


@runtime_checkable
class Vault(Protocol):
    """
    Host document store.

    Paths are vault-relative, '/'-separated strings.
    """

    def read(self, path: str) -> str:
        ...

    def write(self, path: str, text: str) -> None:
        ...

    def exists(self, path: str) -> bool:
        ...

    def enumerate(self) -> list[str]:
        """All note paths in the vault."""
        ...

    def stat(self, path: str) -> FileStat:
        ...

    def process_front_matter(self, path: str, fn: Callable[[dict[str, Any]], None]) -> None:
        """
        Atomically read-modify-write a note's front-matter.

        ``fn`` mutates the parsed mapping in place; the body is preserved.
        """
        ...

    def active_document(self) -> Optional[str]:
        """The note the user is currently working on, if any."""
        ...


# -----------------------------------------------------------------------------
# Content helpers
# -----------------------------------------------------------------------------

def clean_content(content: str) -> str:
    """
    Strip everything that shouldn't influence embeddings or prompts.

    Removes the leading front-matter block, ``![[...]]`` embeds and fenced
    code blocks, then trims whitespace.
    """
    content = _LEADING_FRONTMATTER_RE.sub("", content, count=1)
    content = _EMBED_RE.sub("", content)
    content = _CODE_BLOCK_RE.sub("", content)
    return content.strip()


def split_front_matter(text: str) -> tuple[dict[str, Any], str]:
    """
    Split a note into (front-matter mapping, body).

    Notes without a front-matter block return an empty mapping and the full
    text.

    Raises:
        ValueError: If the block is not valid YAML or not a mapping
    """
    match = _FRONTMATTER_BLOCK_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid front-matter: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("Front-matter must be a mapping")
    return data, text[match.end():]


def join_front_matter(data: dict[str, Any], body: str) -> str:
    """Render a front-matter mapping and body back into note text."""
    if not data:
        return body
    rendered = yaml.safe_dump(
        data, sort_keys=False, allow_unicode=True, default_flow_style=False
    )
    return f"---\n{rendered}---\n{body}"


def in_scope(path: str, target_folder: str = "") -> bool:
    """Markdown notes only, and only under ``target_folder`` when one is set."""
    if not path or not path.endswith(NOTE_EXTENSION):
        return False
    folder = target_folder.strip().strip("/")
    if folder:
        return path.startswith(folder + "/")
    return True


def note_title(path: str) -> str:
    """Title the host uses for links: file name without extension."""
    name = path.rsplit("/", 1)[-1]
    return name[: -len(NOTE_EXTENSION)] if name.endswith(NOTE_EXTENSION) else name


def apply_enhancement(vault: Vault, path: str, enhancement: Enhancement, config) -> None:
    """
    Merge an enhancement into a note's front-matter.

    Only enabled, non-empty fields are written; each written field replaces
    the previous value. ``sane_updated`` and ``sane_version`` are always set.
    """
    stat = vault.stat(path)

    def mutate(frontmatter: dict[str, Any]) -> None:
        if config.enable_tags and enhancement.tags:
            frontmatter[f"{FRONTMATTER_PREFIX}tags"] = list(enhancement.tags)
        if config.enable_keywords and enhancement.keywords:
            frontmatter[f"{FRONTMATTER_PREFIX}keywords"] = list(enhancement.keywords)
        if config.enable_links and enhancement.links:
            frontmatter[f"{FRONTMATTER_PREFIX}links"] = list(enhancement.links)
        if config.enable_summary and enhancement.summary:
            frontmatter[f"{FRONTMATTER_PREFIX}summary"] = enhancement.summary
        if config.enable_creation_timestamp:
            frontmatter["created_at"] = iso_timestamp(
                datetime.fromtimestamp(stat.ctime, tz=timezone.utc)
            )
        if config.enable_modification_timestamp:
            frontmatter["modified_at"] = iso_timestamp(
                datetime.fromtimestamp(stat.mtime, tz=timezone.utc)
            )
        frontmatter[f"{FRONTMATTER_PREFIX}updated"] = utc_now()
        frontmatter[f"{FRONTMATTER_PREFIX}version"] = FRONTMATTER_VERSION

    vault.process_front_matter(path, mutate)


# -----------------------------------------------------------------------------
# Filesystem vault
# -----------------------------------------------------------------------------

class FileVault:
    """
    A directory of markdown notes.

    Hidden files and directories (``.obsidian``, ``.sane``, ...) and
    symlinks are ignored.
    """

    # Default max note size: 10MB
    MAX_FILE_SIZE = 10_000_000

    def __init__(self, root: Path, max_size: int | None = None):
        self.root = Path(root).expanduser().resolve()
        self.max_size = max_size or self.MAX_FILE_SIZE
        self._snapshot: Optional[dict[str, float]] = None

    def _resolve(self, path: str) -> Path:
        full = (self.root / path).resolve()
        if full != self.root and self.root not in full.parents:
            raise ValueError(f"Path escapes vault: {path}")
        return full

    def _relative(self, full: Path) -> str:
        return full.relative_to(self.root).as_posix()

    def read(self, path: str) -> str:
        full = self._resolve(path)
        if not full.is_file():
            raise FileNotFoundError(f"Note not found: {path}")
        size = full.stat().st_size
        if size > self.max_size:
            raise IOError(f"Note too large: {size:,} bytes (max {self.max_size:,})")
        return full.read_text(encoding="utf-8")

    def write(self, path: str, text: str) -> None:
        """Write via temp file + rename so readers never see a partial note."""
        full = self._resolve(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=full.parent, prefix=".sane-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, full)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def exists(self, path: str) -> bool:
        try:
            return self._resolve(path).is_file()
        except ValueError:
            return False

    def stat(self, path: str) -> FileStat:
        st = self._resolve(path).stat()
        # st_birthtime where the platform has it (macOS, BSD)
        ctime = getattr(st, "st_birthtime", st.st_ctime)
        return FileStat(ctime=ctime, mtime=st.st_mtime)

    def enumerate(self) -> list[str]:
        notes = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for name in sorted(filenames):
                if name.startswith(".") or not name.endswith(NOTE_EXTENSION):
                    continue
                full = Path(dirpath) / name
                if full.is_symlink():
                    continue
                notes.append(self._relative(full))
        return notes

    def process_front_matter(self, path: str, fn: Callable[[dict[str, Any]], None]) -> None:
        text = self.read(path)
        frontmatter, body = split_front_matter(text)
        fn(frontmatter)
        self.write(path, join_front_matter(frontmatter, body))
        # Our own front-matter writes must not come back as "modified" events
        if self._snapshot is not None and path in self._snapshot:
            self._snapshot[path] = self._resolve(path).stat().st_mtime

    def active_document(self) -> Optional[str]:
        """Most recently modified note."""
        latest: Optional[tuple[float, str]] = None
        for path in self.enumerate():
            mtime = self._resolve(path).stat().st_mtime
            if latest is None or mtime > latest[0]:
                latest = (mtime, path)
        return latest[1] if latest else None

    # Change detection

    def _take_snapshot(self) -> dict[str, float]:
        snapshot = {}
        for path in self.enumerate():
            try:
                snapshot[path] = self._resolve(path).stat().st_mtime
            except FileNotFoundError:
                continue  # deleted between listing and stat
        return snapshot

    def scan_changes(self) -> list[ChangeEvent]:
        """
        Diff the vault against the previous scan.

        The first call records a baseline and returns no events.
        """
        current = self._take_snapshot()
        previous = self._snapshot
        self._snapshot = current
        if previous is None:
            return []

        events = []
        for path, mtime in current.items():
            if path not in previous:
                events.append(ChangeEvent("created", path))
            elif mtime != previous[path]:
                events.append(ChangeEvent("modified", path))
        for path in previous:
            if path not in current:
                events.append(ChangeEvent("deleted", path))
        return events

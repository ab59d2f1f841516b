"""
Data types for note enhancement.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


# Front-matter keys are namespaced so enhancements never clobber user fields
FRONTMATTER_PREFIX = "sane_"
FRONTMATTER_VERSION = "1.0"

# Link form understood by the host (wiki-style reference)
LINK_OPEN = "[["
LINK_CLOSE = "]]"


def utc_now() -> str:
    """Current UTC timestamp in ISO-8601 with millisecond precision and 'Z' suffix.

    This is the format written to front-matter (``sane_updated``,
    ``created_at``, ``modified_at``).
    """
    return iso_timestamp(datetime.now(timezone.utc))


def iso_timestamp(dt: datetime) -> str:
    """Format an aware or naive datetime as ISO-8601 UTC with 'Z' suffix."""
    if dt.tzinfo is None:
        dt = dt.astimezone()
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def to_link(value: str) -> str:
    """Normalize a note reference to ``[[title]]`` form.

    Values already wrapped are returned untouched; otherwise quotes are
    stripped and the remainder is wrapped.
    """
    if value.startswith(LINK_OPEN) and value.endswith(LINK_CLOSE):
        return value
    clean = value.replace('"', "").replace("'", "").strip()
    return f"{LINK_OPEN}{clean}{LINK_CLOSE}"


@dataclass
class NoteEmbedding:
    """
    Embedding for a single note.

    Attributes:
        path: Vault-relative path of the note
        clean_text: Note body after front-matter/code/embeds were stripped
        vector: Embedding vector
        last_updated: Milliseconds since the epoch when the vector was stored
    """
    path: str
    clean_text: str
    vector: list[float]
    last_updated: int

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "content": self.clean_text,
            "embedding": list(self.vector),
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NoteEmbedding":
        return cls(
            path=str(data["path"]),
            clean_text=str(data.get("content", "")),
            vector=[float(v) for v in data.get("embedding", [])],
            last_updated=int(data.get("lastUpdated", 0)),
        )


@dataclass(frozen=True)
class RankedNeighbor:
    """A note ranked against a query note. Never persisted."""
    path: str
    similarity: float


@dataclass
class Enhancement:
    """Structured metadata produced by the language model for one note."""
    tags: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    summary: str = ""

    def is_empty(self) -> bool:
        return not (self.tags or self.keywords or self.links or self.summary)


@dataclass
class CostEntry:
    """One recorded spend event. Timestamp is milliseconds since the epoch."""
    timestamp: int
    operation: str
    cost: float
    provider: str

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "operation": self.operation,
            "cost": self.cost,
            "provider": self.provider,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CostEntry":
        return cls(
            timestamp=int(data["timestamp"]),
            operation=str(data.get("operation", "")),
            cost=float(data.get("cost", 0.0)),
            provider=str(data.get("provider", "")),
        )


@dataclass
class ProcessResult:
    """Outcome of processing one document through the pipeline."""
    path: str
    status: str = "processed"  # processed | skipped | not_configured | budget_exceeded
    enhanced: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    neighbors: list[RankedNeighbor] = field(default_factory=list)

    @property
    def budget_exceeded(self) -> bool:
        return self.status == "budget_exceeded"


@dataclass
class CostSummary:
    """Spend overview for the cost-summary command."""
    today: float
    month: float
    daily_budget: float
    entries: int
    embeddings: int
    provider: str


@dataclass
class SessionStatus:
    """Diagnostic snapshot for the status command."""
    provider: str
    configured: bool
    embeddings: int
    queue_size: int
    target_folder: Optional[str]
    trigger: str

"""
In-memory embedding table keyed by note path.

A flat map is enough at note-collection scale: every ranking call is a
linear scan. Persistence is a JSON array of ``[path, embedding]`` pairs in
insertion order; where that blob lives is up to the caller.
"""

import json
import logging
import os
import time
from pathlib import Path
from typing import Iterator, Optional

from .types import NoteEmbedding

logger = logging.getLogger(__name__)

# Fixed storage key for the persisted table
STORAGE_KEY = "sane-embeddings"


def _now_ms() -> int:
    return int(time.time() * 1000)


class EmbeddingStore:
    """
    Path → NoteEmbedding map.

    Mutations are visible immediately to subsequent ranking calls.
    Iteration follows insertion order; re-upserting an existing path keeps
    its original position.
    """

    def __init__(self):
        self._embeddings: dict[str, NoteEmbedding] = {}

    def upsert(self, path: str, clean_text: str, vector: list[float]) -> NoteEmbedding:
        """Store (or overwrite) the embedding for a path."""
        embedding = NoteEmbedding(
            path=path,
            clean_text=clean_text,
            vector=list(vector),
            last_updated=_now_ms(),
        )
        self._embeddings[path] = embedding
        return embedding

    def get(self, path: str) -> Optional[NoteEmbedding]:
        return self._embeddings.get(path)

    def remove(self, path: str) -> bool:
        """Remove a path. Returns True if it was present."""
        return self._embeddings.pop(path, None) is not None

    def all(self) -> Iterator[tuple[str, NoteEmbedding]]:
        # Snapshot so callers may mutate the store while iterating
        return iter(list(self._embeddings.items()))

    def size(self) -> int:
        return len(self._embeddings)

    def __len__(self) -> int:
        return len(self._embeddings)

    def __contains__(self, path: str) -> bool:
        return path in self._embeddings

    def clear(self) -> None:
        self._embeddings.clear()

    # Serialization

    def serialize(self) -> str:
        """Serialize as a JSON array of [path, embedding] pairs."""
        return json.dumps(
            [[path, emb.to_dict()] for path, emb in self._embeddings.items()]
        )

    def load_from(self, blob: Optional[str]) -> int:
        """
        Replace contents with a previously serialized table.

        Malformed entries are skipped. Returns the number of embeddings loaded.

        Raises:
            ValueError: If the blob is not a JSON array
        """
        self._embeddings.clear()
        if not blob:
            return 0
        data = json.loads(blob)
        if not isinstance(data, list):
            raise ValueError("Embedding table must be a JSON array of [path, embedding] pairs")
        for entry in data:
            try:
                path, raw = entry
                embedding = NoteEmbedding.from_dict(raw)
            except (TypeError, ValueError, KeyError) as e:
                logger.debug("Skipping malformed embedding entry: %s", e)
                continue
            self._embeddings[str(path)] = embedding
        return len(self._embeddings)

    # File persistence

    def load_file(self, state_path: Path) -> int:
        """Load the table from ``<state_path>/sane-embeddings.json`` if present."""
        path = state_path / f"{STORAGE_KEY}.json"
        if not path.exists():
            return 0
        try:
            return self.load_from(path.read_text(encoding="utf-8"))
        except ValueError as e:
            # json.JSONDecodeError is a ValueError
            logger.warning("Could not load embeddings from %s: %s", path, e)
            return 0

    def save_file(self, state_path: Path) -> Path:
        """Write the table atomically to ``<state_path>/sane-embeddings.json``."""
        state_path.mkdir(parents=True, exist_ok=True)
        path = state_path / f"{STORAGE_KEY}.json"
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(self.serialize(), encoding="utf-8")
        os.replace(tmp, path)
        return path

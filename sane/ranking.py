"""
Cosine-similarity ranking over the embedding store.

Pure functions: no I/O, never raise on odd vectors.
"""

import math
from collections.abc import Sequence

from .embedding_store import EmbeddingStore
from .types import RankedNeighbor


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when the lengths differ or either vector has zero magnitude.
    """
    if len(a) != len(b):
        return 0.0

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


def rank_relevant(store: EmbeddingStore, query_path: str, k: int) -> list[RankedNeighbor]:
    """
    Top-k notes most similar to ``query_path``, excluding the query itself.

    Sorted by descending similarity. Ties keep store iteration order
    (insertion order), since ``sorted`` is stable. Returns an empty list if
    the query path has no stored embedding or ``k`` is not positive.
    """
    query = store.get(query_path)
    if query is None or k <= 0:
        return []

    scored = [
        RankedNeighbor(path=path, similarity=cosine_similarity(query.vector, emb.vector))
        for path, emb in store.all()
        if path != query_path
    ]
    scored.sort(key=lambda n: n.similarity, reverse=True)
    return scored[:k]

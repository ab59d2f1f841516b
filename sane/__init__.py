"""
sane: semantic enhancement for markdown notes.

Embeds notes, finds each changed note's closest neighbors and asks a
language model for tags, keywords, links and a summary, written back as
front-matter.
"""

from .api import Session
from .config import SaneConfig, load_config, load_or_create_config, save_config
from .embedding_store import EmbeddingStore
from .errors import BudgetExceededError, NotConfiguredError, ProviderError, SaneError
from .parsing import parse_enhancement
from .ranking import cosine_similarity, rank_relevant
from .types import Enhancement, NoteEmbedding, ProcessResult, RankedNeighbor
from .vault import FileVault, Vault

__version__ = "0.1.0"

__all__ = [
    "BudgetExceededError",
    "EmbeddingStore",
    "Enhancement",
    "FileVault",
    "NoteEmbedding",
    "NotConfiguredError",
    "ProcessResult",
    "ProviderError",
    "RankedNeighbor",
    "SaneConfig",
    "SaneError",
    "Session",
    "Vault",
    "cosine_similarity",
    "load_config",
    "load_or_create_config",
    "parse_enhancement",
    "rank_relevant",
    "save_config",
]

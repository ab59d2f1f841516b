"""
Note enhancement pipeline.

One run per changed note:

1. refuse to run if the backend isn't configured
2. clean and embed the note, store the vector
3. rank the most similar notes
4. enhance each neighbor (budget-gated) with the changed note as context
5. while the vault is still small, also enhance the changed note itself
"""

import logging
from collections.abc import Callable
from typing import Optional

from .cost_ledger import CostLedger, token_estimate
from .embedding_store import EmbeddingStore
from .errors import BudgetExceededError, NotConfiguredError, ProviderError
from .parsing import parse_enhancement
from .providers import AIBackend
from .ranking import rank_relevant
from .types import ProcessResult, RankedNeighbor
from .vault import Vault, apply_enhancement, clean_content

logger = logging.getLogger(__name__)

# Below this many stored embeddings the changed note is enhanced too,
# since a young vault has few neighbors to enrich. Tunable.
INITIALIZATION_THRESHOLD = 10


class EnhancementPipeline:
    """
    Runs embed → rank → enhance for a single note.

    Args:
        backend: Active AI backend
        store: Embedding table (mutated)
        ledger: Cost log and budget gate (mutated)
        vault: Where notes are read and front-matter is written
        config: Configuration snapshot for this pipeline
        notify: Called with user-facing messages for per-note failures
    """

    def __init__(
        self,
        backend: AIBackend,
        store: EmbeddingStore,
        ledger: CostLedger,
        vault: Vault,
        config,
        notify: Optional[Callable[[str], None]] = None,
    ):
        self.backend = backend
        self.store = store
        self.ledger = ledger
        self.vault = vault
        self.config = config
        self._notify = notify or (lambda message: None)

    def process_document(self, path: str) -> ProcessResult:
        """
        Process one note.

        Neighbor failures are reported and skipped. A budget stop ends the
        run early; everything done before it is kept.

        Raises:
            NotConfiguredError: If the backend lacks credentials/endpoint
        """
        if not self.backend.is_configured():
            raise NotConfiguredError(self.backend.name)

        clean_text = clean_content(self.vault.read(path))

        try:
            vector = self.backend.embed(clean_text)
        except ProviderError as e:
            logger.warning("Embedding failed for %s: %s", path, e)
            return ProcessResult(path=path, status="skipped")
        if not vector:
            logger.info("Empty embedding for %s, skipping", path)
            return ProcessResult(path=path, status="skipped")

        self.store.upsert(path, clean_text, vector)
        if self.backend.native_embeddings:
            self.ledger.record("embedding", token_estimate(clean_text), self.backend.name)

        neighbors = self._live_neighbors(path, self.config.relevant_notes_count)
        result = ProcessResult(path=path, neighbors=neighbors)
        logger.debug("%s: %d neighbor(s)", path, len(neighbors))

        live = [n.path for n in neighbors]
        for neighbor in live:
            if not self._try_enhance(neighbor, [clean_text], result):
                return result

        if self.store.size() < INITIALIZATION_THRESHOLD:
            self._try_enhance(path, live, result)

        return result

    def _live_neighbors(self, path: str, k: int) -> list[RankedNeighbor]:
        """Top-k neighbors whose notes still exist; stale entries are dropped."""
        live = []
        for neighbor in rank_relevant(self.store, path, self.store.size()):
            if len(live) >= k:
                break
            if not self.vault.exists(neighbor.path):
                # Stale entry for a note removed while we weren't watching
                self.store.remove(neighbor.path)
                continue
            live.append(neighbor)
        return live

    def _try_enhance(self, target: str, related: list[str], result: ProcessResult) -> bool:
        """Enhance ``target``, recording the outcome. Returns False on a budget stop."""
        try:
            self.enhance_note(target, related)
        except BudgetExceededError as e:
            logger.info("Budget stop before %s: %s", target, e)
            result.status = "budget_exceeded"
            return False
        except Exception as e:
            logger.warning("Enhancing %s failed: %s", target, e)
            result.failed.append(target)
            self._notify(f"Error enhancing {target}: {e}")
        else:
            result.enhanced.append(target)
        return True

    def enhance_note(self, path: str, related_texts: list[str]) -> None:
        """
        Generate and write an enhancement for one note.

        Raises:
            BudgetExceededError: If today's budget is already spent
            ProviderError: If the backend call fails
        """
        self.ledger.check(self.config.daily_budget)

        content = clean_content(self.vault.read(path))
        raw = self.backend.enhance(content, related_texts)
        self.ledger.record("enhancement", token_estimate(content), self.backend.name)

        enhancement = parse_enhancement(raw)
        if enhancement.is_empty():
            logger.info("No usable enhancement for %s", path)
        apply_enhancement(self.vault, path, enhancement, self.config)

"""
Session: the object that owns all enhancement state for one vault.

Holds the configuration snapshot, the active backend, the embedding table,
the cost log, the pending queue, the scheduler and the pipeline, and exposes
the operator commands (process, initialize-all, costs, status, test).

Example:
    with Session(FileVault(vault_dir), load_or_create_config(state)) as s:
        s.process("notes/idea.md")
"""

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any, Optional

from .config import SaneConfig, save_config
from .cost_ledger import CostLedger, token_estimate
from .embedding_store import EmbeddingStore
from .errors import (
    BUDGET_NOTICE,
    NotConfiguredError,
    ProviderError,
    SaneError,
    log_exception,
)
from .parsing import parse_enhancement
from .pipeline import EnhancementPipeline
from .providers import AIBackend, create_backend
from .scheduler import ProcessingQueue, ProcessingScheduler
from .types import CostSummary, Enhancement, ProcessResult, SessionStatus
from .vault import ChangeEvent, Vault, in_scope

logger = logging.getLogger(__name__)

# Pause between notes during initialize-all
INITIALIZE_PAUSE_SECONDS = 0.1
# Progress notice cadence during initialize-all
PROGRESS_EVERY = 10

TEST_NOTE = (
    "This is a test note about machine learning and artificial intelligence. "
    "It discusses neural networks and their applications in modern AI systems."
)
TEST_RELATED = [
    "Introduction to AI: Basic concepts",
    "Neural Networks: Deep dive",
]


def _log_notice(message: str) -> None:
    logger.info("notice: %s", message)


class Session:
    """
    Note enhancement session for one vault.

    Args:
        vault: Document store the notes live in
        config: Configuration snapshot
        backend: Injected backend (skips creation from config)
        notify: Receives user-facing notices
        timer_factory: ``threading.Timer``-compatible constructor for the scheduler
        clock: Returns current local time (cost day boundaries, schedule)
        pause: Seconds between notes during ``initialize_all``
    """

    def __init__(
        self,
        vault: Vault,
        config: SaneConfig,
        *,
        backend: Optional[AIBackend] = None,
        notify: Optional[Callable[[str], None]] = None,
        timer_factory: Callable[..., Any] = threading.Timer,
        clock: Optional[Callable[[], datetime]] = None,
        pause: float = INITIALIZE_PAUSE_SECONDS,
    ) -> None:
        self.vault = vault
        self.config = config
        self._notify = notify or _log_notice
        self._pause = pause
        # Serializes pipeline runs across event handlers and timer threads
        self._lock = threading.RLock()
        self._ops_log_handler = None
        self._opened = False

        self.backend: AIBackend = backend or create_backend(config)
        self.store = EmbeddingStore()
        self.ledger = CostLedger(
            self.backend.estimate_cost, tracking=config.cost_tracking, clock=clock
        )
        self.queue = ProcessingQueue()
        self.scheduler = ProcessingScheduler(
            self.queue,
            self.process,
            self._remove_embedding,
            trigger=config.trigger,
            delay_minutes=config.delay_minutes,
            schedule_hour=config.schedule_hour,
            timer_factory=timer_factory,
            clock=clock,
        )
        self.pipeline = self._new_pipeline()

    def _new_pipeline(self) -> EnhancementPipeline:
        return EnhancementPipeline(
            self.backend, self.store, self.ledger, self.vault, self.config, notify=self._notify
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def open(self) -> "Session":
        """Load persisted state and arm the scheduled timer."""
        state_path = self.config.state_path
        from .logging_config import configure_ops_log
        self._ops_log_handler = configure_ops_log(state_path)

        with self._lock:
            embeddings = self.store.load_file(state_path)
            costs = self.ledger.load_file(state_path)
            pending = self.queue.load_file(state_path)
        logger.info(
            "Opened session: %d embedding(s), %d cost entr(ies), %d pending",
            embeddings, costs, pending,
        )
        self.scheduler.start()
        self._opened = True
        return self

    def save(self) -> None:
        """Persist embeddings, cost log and pending queue."""
        state_path = self.config.state_path
        with self._lock:
            self.store.save_file(state_path)
            self.ledger.save_file(state_path)
            self.queue.save_file(state_path)

    def close(self) -> None:
        """Cancel timers, then persist state. Safe to call more than once."""
        if not self._opened:
            return
        self._opened = False
        self.scheduler.shutdown()
        try:
            self.save()
        finally:
            self._close_backend(self.backend)
            if self._ops_log_handler is not None:
                logging.getLogger("sane").removeHandler(self._ops_log_handler)
                self._ops_log_handler.close()
                self._ops_log_handler = None

    def __enter__(self) -> "Session":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    @staticmethod
    def _close_backend(backend: AIBackend) -> None:
        close = getattr(backend, "close", None)
        if callable(close):
            close()

    def update_config(self, **changes: Any) -> SaneConfig:
        """
        Apply and save a settings change.

        The backend is rebuilt for the new configuration and the scheduler
        re-armed. In-memory embeddings, costs and queue are kept.

        Raises:
            ValueError: If the new values are invalid
        """
        config = self.config.with_changes(**changes)
        save_config(config)
        with self._lock:
            old_backend = self.backend
            self.config = config
            self.backend = create_backend(config)
            self.ledger.estimator = self.backend.estimate_cost
            self.ledger.tracking = config.cost_tracking
            self.pipeline = self._new_pipeline()
            self._close_backend(old_backend)
        self.scheduler.configure(config.trigger, config.delay_minutes, config.schedule_hour)
        return config

    # -------------------------------------------------------------------------
    # Vault events
    # -------------------------------------------------------------------------

    def on_created(self, path: str) -> None:
        self._on_changed(path)

    def on_modified(self, path: str) -> None:
        self._on_changed(path)

    def on_deleted(self, path: str) -> None:
        self.scheduler.on_document_deleted(path)

    def _on_changed(self, path: str) -> None:
        if not in_scope(path, self.config.target_folder):
            return
        self.scheduler.on_document_changed(path)

    def dispatch(self, event: ChangeEvent) -> None:
        """Route a change event to the matching handler."""
        handler = {
            "created": self.on_created,
            "modified": self.on_modified,
            "deleted": self.on_deleted,
        }.get(event.kind)
        if handler is None:
            logger.debug("Ignoring unknown event kind %r for %s", event.kind, event.path)
            return
        handler(event.path)

    def _remove_embedding(self, path: str) -> None:
        with self._lock:
            if self.store.remove(path):
                logger.info("Removed embedding for deleted note %s", path)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def process(self, path: str) -> Optional[ProcessResult]:
        """
        Run the pipeline for one note.

        Failures become notices; returns None if the note no longer exists.
        """
        with self._lock:
            if not self.vault.exists(path):
                logger.info("Skipping %s: no longer exists", path)
                return None
            try:
                result = self.pipeline.process_document(path)
            except NotConfiguredError as e:
                self._notify(str(e))
                return ProcessResult(path=path, status="not_configured")
            except Exception as e:
                log_exception(e, context=f"process {path}",
                              log_path=self.config.state_path / "sane-errors.log")
                self._notify(f"Error processing {path}: {e}")
                return ProcessResult(path=path, status="skipped")

        if result.budget_exceeded:
            self._notify(BUDGET_NOTICE)
        logger.info(
            "Processed %s: %d enhanced, %d failed (%s)",
            path, len(result.enhanced), len(result.failed), result.status,
        )
        return result

    def process_current(self) -> Optional[ProcessResult]:
        """Process the vault's active note, if there is one."""
        path = self.vault.active_document()
        if path is None:
            self._notify("No active note")
            return None
        target = self.config.target_folder
        if not in_scope(path, target):
            self._notify(
                f"Current note {path} is not in the target folder ({target}). "
                "Change the target folder setting or move the note."
            )
            return None
        result = self.process(path)
        if result is not None and result.status == "processed":
            self._notify(f"Processed {path}")
        return result

    def initialize_all(
        self, confirm: Optional[Callable[[int], bool]] = None
    ) -> list[ProcessResult]:
        """
        Process every in-scope note, one at a time.

        Args:
            confirm: Called with the note count; processing only starts if it
                returns True. None means no confirmation.

        Stops early when the backend is not configured or the budget runs out.
        """
        paths = [p for p in self.vault.enumerate() if in_scope(p, self.config.target_folder)]
        total = len(paths)
        if confirm is not None and not confirm(total):
            return []

        self._notify(f"Processing {total} notes...")
        results: list[ProcessResult] = []
        for i, path in enumerate(paths, start=1):
            result = self.process(path)
            if result is None:
                continue
            results.append(result)
            if result.status == "not_configured":
                break
            if result.budget_exceeded:
                self._notify(f"Initialization stopped after {i} of {total} notes")
                return results
            if i % PROGRESS_EVERY == 0:
                self._notify(f"Processed {i}/{total} notes")
            if self._pause > 0 and i < total:
                time.sleep(self._pause)

        self._notify(f"Initialization complete: {len(results)} notes processed")
        return results

    def flush(self) -> list[str]:
        """Process everything waiting in the queue now."""
        return self.scheduler.flush()

    def cost_summary(self) -> CostSummary:
        return CostSummary(
            today=self.ledger.spent_today(),
            month=self.ledger.spent_this_month(),
            daily_budget=self.config.daily_budget,
            entries=len(self.ledger.entries),
            embeddings=self.store.size(),
            provider=self.config.provider,
        )

    def status(self) -> SessionStatus:
        return SessionStatus(
            provider=self.config.provider,
            configured=self.backend.is_configured(),
            embeddings=self.store.size(),
            queue_size=len(self.queue),
            target_folder=self.config.target_folder or None,
            trigger=self.config.trigger,
        )

    def test_backend(self) -> dict[str, Any]:
        """
        Run the configured backend against a synthetic note.

        Only available with ``debug`` enabled. Nothing is written to the vault.

        Returns:
            Dict with provider, embedding dimension and the parsed enhancement

        Raises:
            SaneError: If debug mode is off
            NotConfiguredError: If the backend is not configured
            ProviderError: If a backend call fails
        """
        if not self.config.debug:
            raise SaneError("The AI test is only available in debug mode")
        if not self.backend.is_configured():
            raise NotConfiguredError(self.backend.name)

        if self.config.provider == "local":
            self._check_local_models()

        vector = self.backend.embed(TEST_NOTE)
        raw = self.backend.enhance(TEST_NOTE, TEST_RELATED)
        with self._lock:
            if self.backend.native_embeddings:
                self.ledger.record("embedding", token_estimate(TEST_NOTE), self.backend.name)
            self.ledger.record("enhancement", token_estimate(TEST_NOTE), self.backend.name)
        enhancement: Enhancement = parse_enhancement(raw)
        logger.debug("Test response from %s: %s", self.backend.name, raw)
        return {
            "provider": self.backend.name,
            "dimension": len(vector),
            "raw": raw,
            "enhancement": enhancement,
        }

    def _check_local_models(self) -> None:
        from .providers.ollama_utils import ollama_base_url, ollama_has_model

        base_url = ollama_base_url(self.config.local_endpoint)
        for model in (self.config.effective_llm_model, self.config.effective_embedding_model):
            try:
                present = ollama_has_model(base_url, model)
            except RuntimeError as e:
                raise ProviderError("local", str(e)) from e
            if not present:
                self._notify(f"Model '{model}' not found on {base_url}. Try: ollama pull {model}")

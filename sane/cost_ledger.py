"""
Rolling log of estimated AI spend and the daily budget gate.

Entries are append-only and pruned to a 30-day window on every write.
"Today" is the local calendar day of the injected clock.
"""

import json
import logging
import math
import os
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Optional

from .errors import BudgetExceededError
from .types import CostEntry

logger = logging.getLogger(__name__)

STORAGE_KEY = "sane-costs"
RETENTION_DAYS = 30
MS_PER_DAY = 24 * 60 * 60 * 1000

# Whitespace tokens per subword token (rough)
WORDS_PER_TOKEN = 0.75


def token_estimate(text: str) -> int:
    """Approximate subword token count: whitespace tokens / 0.75, rounded up."""
    return math.ceil(len(text.split()) / WORDS_PER_TOKEN)


def _default_estimator(tokens: int, operation: str = "generation") -> float:
    return 0.0


class CostLedger:
    """
    Append-only cost log with a daily budget check.

    Args:
        estimator: ``(tokens, operation) -> cost``; normally the active
            backend's ``estimate_cost``
        tracking: When False, ``can_afford`` always returns True and
            ``record`` is a no-op
        clock: Returns the current local time (naive datetime)
    """

    def __init__(
        self,
        estimator: Optional[Callable[..., float]] = None,
        *,
        tracking: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.estimator = estimator or _default_estimator
        self.tracking = tracking
        self._clock = clock or datetime.now
        self._entries: list[CostEntry] = []

    def _now_ms(self) -> int:
        return int(self._clock().timestamp() * 1000)

    @property
    def entries(self) -> list[CostEntry]:
        return list(self._entries)

    def record(self, operation: str, tokens: int, provider: str) -> Optional[CostEntry]:
        """Append a cost entry for ``tokens`` and prune entries older than 30 days."""
        if not self.tracking:
            return None
        cost = self.estimator(tokens, operation)
        now = self._now_ms()
        entry = CostEntry(timestamp=now, operation=operation, cost=cost, provider=provider)
        self._entries.append(entry)

        cutoff = now - RETENTION_DAYS * MS_PER_DAY
        self._entries = [e for e in self._entries if e.timestamp >= cutoff]
        logger.info("Cost %s: %.6f (%d tokens, %s)", operation, cost, tokens, provider)
        return entry

    def spent_today(self) -> float:
        today = self._clock().date()
        return sum(
            e.cost for e in self._entries
            if datetime.fromtimestamp(e.timestamp / 1000).date() == today
        )

    def spent_this_month(self) -> float:
        now = self._clock()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        start_ms = int(month_start.timestamp() * 1000)
        return sum(e.cost for e in self._entries if e.timestamp >= start_ms)

    def can_afford(self, daily_budget: float) -> bool:
        """True while today's spend is strictly below the budget."""
        if not self.tracking:
            return True
        return self.spent_today() < daily_budget

    def check(self, daily_budget: float) -> None:
        """
        Gate a costly operation.

        Raises:
            BudgetExceededError: If today's spend has reached the budget
        """
        if not self.can_afford(daily_budget):
            raise BudgetExceededError(self.spent_today(), daily_budget)

    # Serialization

    def serialize(self) -> str:
        return json.dumps([e.to_dict() for e in self._entries])

    def load_from(self, blob: Optional[str]) -> int:
        self._entries = []
        if not blob:
            return 0
        data = json.loads(blob)
        if not isinstance(data, list):
            raise ValueError("Cost log must be a JSON array")
        for raw in data:
            try:
                self._entries.append(CostEntry.from_dict(raw))
            except (TypeError, ValueError, KeyError) as e:
                logger.debug("Skipping malformed cost entry: %s", e)
        return len(self._entries)

    def load_file(self, state_path: Path) -> int:
        path = state_path / f"{STORAGE_KEY}.json"
        if not path.exists():
            return 0
        try:
            return self.load_from(path.read_text(encoding="utf-8"))
        except ValueError as e:
            logger.warning("Could not load cost log from %s: %s", path, e)
            return 0

    def save_file(self, state_path: Path) -> Path:
        state_path.mkdir(parents=True, exist_ok=True)
        path = state_path / f"{STORAGE_KEY}.json"
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(self.serialize(), encoding="utf-8")
        os.replace(tmp, path)
        return path

"""Bounded in-memory history of past runs."""

import logging
from collections import deque
from typing import Iterator, Optional

from llm_vetting.config.defaults import DEFAULT_HISTORY_LIMIT
from llm_vetting.models.run import Run

logger = logging.getLogger("llm_vetting.engine.history")


class RunHistory:
    """Newest-first list of runs; the oldest is evicted past the limit."""

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT):
        if limit < 1:
            raise ValueError("History limit must be at least 1")
        self._runs: deque[Run] = deque(maxlen=limit)

    @property
    def limit(self) -> int:
        """Maximum number of runs kept."""
        return self._runs.maxlen or 0

    def add(self, run: Run) -> None:
        """Record a run as the newest entry."""
        if len(self._runs) == self._runs.maxlen:
            logger.debug(f"History full, evicting run {self._runs[-1].id}")
        self._runs.appendleft(run)

    def get(self, run_id: str) -> Optional[Run]:
        """Find a run by id."""
        for run in self._runs:
            if run.id == run_id:
                return run
        return None

    @property
    def latest(self) -> Optional[Run]:
        """Most recently added run."""
        return self._runs[0] if self._runs else None

    def clear(self) -> None:
        """Forget every run."""
        self._runs.clear()

    def __iter__(self) -> Iterator[Run]:
        return iter(self._runs)

    def __len__(self) -> int:
        return len(self._runs)

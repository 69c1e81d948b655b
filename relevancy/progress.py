"""
Progress events emitted by ranking runs.

A run yields ProgressEvent records as it moves through its phases; the
last event is always COMPLETED or FAILED and carries the result dict.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional
import logging

logger = logging.getLogger(__name__)

IDLE = 'idle'
SELECTING_CANDIDATES = 'selecting_candidates'
PROMPTING = 'prompting'
AWAITING_ORACLE = 'awaiting_oracle'
VALIDATING = 'validating'
PERSISTING = 'persisting'
COMPLETED = 'completed'
FAILED = 'failed'

TERMINAL_PHASES = (COMPLETED, FAILED)


@dataclass(frozen=True)
class ProgressEvent:
    """One step of a ranking run."""
    phase: str
    processed: int
    total: int
    category: Optional[str] = None
    result: Optional[Dict[str, Any]] = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def describe(self) -> str:
        label = f"[{self.category}] " if self.category else ''
        return f"{label}{self.phase}: {self.processed}/{self.total}"


def log_event(event: ProgressEvent) -> None:
    level = logging.WARNING if event.phase == FAILED else logging.INFO
    logger.log(level, event.describe())


def drain(events: Iterable[ProgressEvent],
          on_event: Optional[Callable[[ProgressEvent], None]] = log_event) -> Dict[str, Any]:
    """
    Consume an event stream and return the terminal event's result.

    Raises:
        RuntimeError: If the stream ends without a terminal event
    """
    last = None
    for event in events:
        if on_event is not None:
            on_event(event)
        last = event

    if last is None or not last.is_terminal:
        raise RuntimeError("Ranking run ended without a terminal progress event")
    return last.result or {}

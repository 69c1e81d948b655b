"""
Chunked, bounded-concurrency execution of oracle calls.

Items are processed in fixed-size chunks; calls inside a chunk run
concurrently and are awaited together. Items that end rate limited are
re-run after a jittered exponential cooldown, a bounded number of times.
There is no fixed sleep between chunks.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterator, List, Optional, Sequence, Tuple, TypeVar

from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from config import settings
from .errors import OracleRateLimited

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class TaskOutcome(Generic[T]):
    """Result of running one item: either value or error is set."""
    item: T
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ChunkResult(Generic[T]):
    """All outcomes for one chunk, in item order."""
    index: int
    total_chunks: int
    outcomes: List[TaskOutcome]
    attempts: int = 1

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return len(self.outcomes) - self.succeeded


class _ChunkRateLimited(Exception):
    pass


def chunk_list(items: Sequence[T], chunk_size: int) -> List[List[T]]:
    """
    Split list into chunks of specified size.
    """
    return [list(items[i:i + chunk_size]) for i in range(0, len(items), chunk_size)]


class ChunkedExecutor:
    """
    Run a function over items, chunk_size at a time.

    Usage:
        executor = ChunkedExecutor(chunk_size=10)
        for chunk in executor.map(rank_one, courses):
            print(chunk.succeeded, chunk.failed)
    """

    def __init__(
        self,
        chunk_size: int = settings.RANK_CHUNK_SIZE,
        max_chunk_retries: int = settings.RANK_CHUNK_MAX_RETRIES,
        backoff_min: float = settings.ORACLE_BACKOFF_MIN_SECONDS,
        backoff_max: float = settings.ORACLE_BACKOFF_MAX_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1 (got {chunk_size})")
        self.chunk_size = chunk_size
        self.max_chunk_retries = max(0, max_chunk_retries)
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max
        self.sleep = sleep

    def _run_concurrently(self, fn: Callable[[T], Any],
                          pending: List[Tuple[int, T]]) -> List[Tuple[int, TaskOutcome]]:
        results = []
        with ThreadPoolExecutor(max_workers=min(self.chunk_size, len(pending))) as pool:
            futures = [(position, item, pool.submit(fn, item)) for position, item in pending]
            for position, item, future in futures:
                try:
                    outcome = TaskOutcome(item=item, value=future.result())
                except Exception as e:
                    outcome = TaskOutcome(item=item, error=e)
                results.append((position, outcome))
        return results

    def _run_chunk(self, fn: Callable[[T], Any], chunk: List[T]) -> Tuple[List[TaskOutcome], int]:
        outcomes: List[Optional[TaskOutcome]] = [None] * len(chunk)
        pending = list(enumerate(chunk))
        attempts = 0

        def attempt():
            nonlocal pending, attempts
            attempts += 1
            limited = []
            for position, outcome in self._run_concurrently(fn, pending):
                outcomes[position] = outcome
                if isinstance(outcome.error, OracleRateLimited):
                    limited.append((position, outcome.item))
            pending = limited
            if limited:
                raise _ChunkRateLimited(f"{len(limited)} item(s) rate limited")

        retrying = Retrying(
            retry=retry_if_exception_type(_ChunkRateLimited),
            stop=stop_after_attempt(self.max_chunk_retries + 1),
            wait=wait_random_exponential(min=self.backoff_min, max=self.backoff_max),
            sleep=self.sleep,
            before_sleep=lambda state: logger.warning(
                f"{len(pending)} item(s) rate limited, cooling down before retry "
                f"{state.attempt_number}/{self.max_chunk_retries}"
            ),
        )
        try:
            retrying(attempt)
        except RetryError:
            logger.error(f"{len(pending)} item(s) still rate limited after {attempts} attempts")

        return [o for o in outcomes if o is not None], attempts

    def map(self, fn: Callable[[T], Any], items: Sequence[T]) -> Iterator[ChunkResult]:
        """
        Lazily process items chunk by chunk.

        Yields:
            ChunkResult per chunk, after all of its calls have finished
        """
        chunks = chunk_list(list(items), self.chunk_size)
        for index, chunk in enumerate(chunks, start=1):
            outcomes, attempts = self._run_chunk(fn, chunk)
            result = ChunkResult(index=index, total_chunks=len(chunks), outcomes=outcomes, attempts=attempts)
            logger.debug(f"Chunk {index}/{len(chunks)}: {result.succeeded} ok, {result.failed} failed")
            yield result

    def run(self, fn: Callable[[T], Any], items: Sequence[T]) -> List[TaskOutcome]:
        """Process every item and return all outcomes in item order."""
        outcomes: List[TaskOutcome] = []
        for chunk in self.map(fn, items):
            outcomes.extend(chunk.outcomes)
        return outcomes

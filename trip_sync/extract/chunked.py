"""Run an async operation over a list in fixed-size concurrent batches."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class ItemFailure(Generic[T]):
    index: int
    item: T
    error: BaseException

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__


@dataclass
class ChunkedResult(Generic[T, U]):
    results: List[U] = field(default_factory=list)
    failures: List[ItemFailure[T]] = field(default_factory=list)
    log: List[str] = field(default_factory=list)


async def process_in_chunks(
    items: Sequence[T],
    processor: Callable[[T], Awaitable[U]],
    chunk_size: int,
    log: Optional[Callable[[str], None]] = None,
) -> ChunkedResult[T, U]:
    """Apply ``processor`` to every item, at most ``chunk_size`` at a time.

    Each chunk is awaited in full before the next one starts. A failing item
    is recorded in ``failures`` and does not disturb the rest of its chunk.
    Successful results keep the order of their items. Nothing is retried.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1")

    outcome: ChunkedResult[T, U] = ChunkedResult()

    def emit(msg: str):
        outcome.log.append(msg)
        if log:
            log(msg)
        else:
            logger.info(msg)

    total_chunks = (len(items) + chunk_size - 1) // chunk_size
    for chunk_no, start in enumerate(range(0, len(items), chunk_size), start=1):
        chunk = items[start:start + chunk_size]
        emit(f"Processing chunk {chunk_no} of {total_chunks}...")
        settled = await asyncio.gather(*(processor(item) for item in chunk), return_exceptions=True)
        for offset, result in enumerate(settled):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                failure = ItemFailure(index=start + offset, item=chunk[offset], error=result)
                outcome.failures.append(failure)
                emit(f"  - ERROR processing item {failure.index + 1}: {failure.message}")
            else:
                outcome.results.append(result)

    return outcome

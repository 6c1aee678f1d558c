"""
Bounded batch pipeline.

Turns a (possibly lazy) sequence of generation requests into chunked,
concurrency-capped, rate-limited `create` calls against one downstream client:

- the input is cut into contiguous chunks of `batch_size`;
- a chunk's calls run concurrently, at most `max_concurrency` in flight;
- chunk N+1 is admitted only after every call of chunk N resolved and
  `inter_batch_delay` elapsed.

Every item resolves independently into `BatchOutcome.succeeded` or
`BatchOutcome.failed`; a failing item never aborts its siblings or the run.
Results are in completion order.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from typing import Any, Iterable, Iterator, List, Optional, Protocol, TypeVar, runtime_checkable

from seeder.domain.errors import ValidationError
from seeder.domain.models import BatchOutcome, FailedItem, GenerationRequest
from seeder.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


@runtime_checkable
class RecordSink(Protocol):
    """Anything that can create one record downstream."""

    async def create(self, request: Any) -> Any:
        ...


def chunked(items: Iterable[T], size: int) -> Iterator[List[T]]:
    """Yield contiguous lists of at most `size` items without materializing the input."""
    iterator = iter(items)
    while True:
        chunk = list(itertools.islice(iterator, size))
        if not chunk:
            return
        yield chunk


class BoundedBatchPipeline:
    """
    Drive requests through `sink.create` in bounded batches.

    Parameters
    ----------
    sink : RecordSink
        Usually a `ResilientDownstreamClient`.
    name : str
        Label used in log messages.
    """

    def __init__(self, sink: RecordSink, name: str = "pipeline") -> None:
        self.sink = sink
        self.name = name

    async def run(
        self,
        requests: Iterable[GenerationRequest],
        batch_size: int,
        max_concurrency: int,
        inter_batch_delay: float = 0.0,
        stop: Optional[asyncio.Event] = None,
    ) -> BatchOutcome:
        """
        Execute the pipeline and return the aggregated outcome.

        Parameters
        ----------
        requests : iterable
            Requests to submit; consumed lazily one chunk at a time.
        batch_size : int
            Chunk size.
        max_concurrency : int
            Upper bound on concurrently outstanding `create` calls.
        inter_batch_delay : float
            Seconds to wait between consecutive chunks.
        stop : asyncio.Event, optional
            Once set, no further chunks are admitted; the outcome is marked
            cancelled. Calls already in flight finish normally.
        """
        if batch_size < 1:
            raise ValidationError("batch_size must be at least 1")
        if max_concurrency < 1:
            raise ValidationError("max_concurrency must be at least 1")
        if inter_batch_delay < 0:
            raise ValidationError("inter_batch_delay must not be negative")

        outcome = BatchOutcome()
        semaphore = asyncio.Semaphore(max_concurrency)
        start = time.perf_counter()

        for index, chunk in enumerate(chunked(requests, batch_size)):
            if index and inter_batch_delay:
                await asyncio.sleep(inter_batch_delay)
            if stop is not None and stop.is_set():
                outcome.cancelled = True
                log.warning(
                    f"[PIPELINE] {self.name}: stop requested, not admitting batch {index + 1}",
                    extra={"pipeline": self.name, "batch": index + 1},
                )
                break

            outcome.requested += len(chunk)
            await self._run_chunk(chunk, semaphore, outcome)
            log.debug(
                f"[PIPELINE] {self.name}: batch {index + 1} resolved",
                extra={
                    "pipeline": self.name,
                    "batch": index + 1,
                    "succeeded": outcome.succeeded_count,
                    "failed": outcome.failed_count,
                },
            )

        log.info(
            f"[PIPELINE] {self.name}: {outcome.succeeded_count}/{outcome.requested} succeeded",
            extra={
                "pipeline": self.name,
                "requested": outcome.requested,
                "succeeded": outcome.succeeded_count,
                "failed": outcome.failed_count,
                "cancelled": outcome.cancelled,
                "duration": round(time.perf_counter() - start, 3),
            },
        )
        return outcome

    async def _run_chunk(
        self,
        chunk: List[GenerationRequest],
        semaphore: asyncio.Semaphore,
        outcome: BatchOutcome,
    ) -> None:
        tasks = [asyncio.create_task(self._submit(request, semaphore, outcome)) for request in chunk]
        try:
            await asyncio.wait(tasks)
        except asyncio.CancelledError:
            # asyncio.wait does not cancel its tasks; let in-flight calls land.
            log.warning(
                f"[PIPELINE] {self.name}: cancelled, draining {sum(not t.done() for t in tasks)} calls",
                extra={"pipeline": self.name},
            )
            outcome.cancelled = True
            await asyncio.wait(tasks)
            raise

    async def _submit(
        self,
        request: GenerationRequest,
        semaphore: asyncio.Semaphore,
        outcome: BatchOutcome,
    ) -> None:
        async with semaphore:
            try:
                result = await self.sink.create(request)
            except Exception as exc:  # noqa: BLE001 - every item resolves independently
                outcome.failed.append(FailedItem(request=request, error=exc))
                log.debug(
                    f"[PIPELINE] {self.name}: item failed: {exc}",
                    extra={"pipeline": self.name, "kind": getattr(exc, "kind", "unexpected")},
                )
                return
        outcome.succeeded.append(result)


__all__ = ["BoundedBatchPipeline", "RecordSink", "chunked"]

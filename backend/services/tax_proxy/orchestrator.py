"""
Batch orchestration for per-record detail calls.

Accurate rate-limits aggressively, so detail calls are fanned out in small
fixed-size batches: every call in a batch runs concurrently, the whole batch
is awaited, and a fixed pause separates consecutive batches. Results are
concatenated in input order. A failing item never takes its siblings down;
its result is replaced through ``on_error``.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar

import structlog

from backend.core.config import Settings
from backend.services.tax_proxy.accurate_client import AccurateClient
from backend.services.tax_proxy.models import NormalizedRecord
from backend.services.tax_proxy.tax_resolver import (
    DEFAULT_STATUTORY_RATE,
    FETCH_FAILED_RESOLUTION,
    RawRecord,
    TaxResolution,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class BatchJob(Generic[T]):
    """A slice of the input processed concurrently"""
    index: int
    items: List[T]


def plan_batches(items: Sequence[T], batch_size: int) -> List[BatchJob[T]]:
    """Split ``items`` into consecutive batches of at most ``batch_size``"""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [
        BatchJob(index=i // batch_size, items=list(items[i:i + batch_size]))
        for i in range(0, len(items), batch_size)
    ]


async def run_in_batches(
    items: Sequence[T],
    operation: Callable[[T], Awaitable[R]],
    batch_size: int = 5,
    pause: float = 0.5,
    on_error: Optional[Callable[[T, Exception], R]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> List[R]:
    """
    Run ``operation`` over ``items`` batch by batch.

    Args:
        items: Inputs, in output order
        operation: Async operation applied to each item
        batch_size: Maximum concurrent operations
        pause: Seconds to wait between batches
        on_error: Produces the result for an item whose operation raised;
            without it the first failure is re-raised after its batch drains
        sleep: Awaitable delay, replaceable in tests

    Returns:
        One result per item, in input order
    """
    jobs = plan_batches(items, batch_size)
    results: List[R] = []

    for job in jobs:
        if job.index > 0 and pause > 0:
            await sleep(pause)

        outcomes = await asyncio.gather(
            *(operation(item) for item in job.items),
            return_exceptions=True,
        )

        failures = 0
        for item, outcome in zip(job.items, outcomes):
            if isinstance(outcome, Exception):
                failures += 1
                if on_error is None:
                    raise outcome
                logger.warning(
                    "batch_item_failed",
                    batch_index=job.index,
                    error=str(outcome) or type(outcome).__name__,
                )
                results.append(on_error(item, outcome))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(outcome)

        logger.info(
            "batch_completed",
            batch_index=job.index,
            batch_count=len(jobs),
            size=len(job.items),
            failures=failures,
        )

    return results


class TaxListingOrchestrator:
    """Resolves taxes for a page of list rows and merges them into NormalizedRecords"""

    def __init__(
        self,
        client: AccurateClient,
        batch_size: int = 5,
        pause: float = 0.5,
        statutory_rate: Decimal = DEFAULT_STATUTORY_RATE,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.batch_size = batch_size
        self.pause = pause
        self.statutory_rate = statutory_rate
        self._sleep = sleep

    @classmethod
    def from_settings(cls, client: AccurateClient, settings: Settings) -> "TaxListingOrchestrator":
        return cls(
            client,
            batch_size=settings.batch.detail_batch_size,
            pause=settings.batch.detail_batch_pause_seconds,
            statutory_rate=settings.batch.statutory_tax_rate,
        )

    async def _resolve_row(self, row: RawRecord) -> TaxResolution:
        record_id = row.get("id")
        if record_id is None:
            logger.warning("list_row_without_id", number=row.get("number"))
            return FETCH_FAILED_RESOLUTION
        return await self.client.fetch_tax_resolution(record_id, self.statutory_rate)

    def _on_error(self, row: RawRecord, exc: Exception) -> TaxResolution:
        logger.error("tax_resolution_failed", record_id=row.get("id"), error=str(exc))
        return FETCH_FAILED_RESOLUTION

    async def resolve_all(self, rows: Sequence[RawRecord]) -> List[TaxResolution]:
        """One TaxResolution per row, in row order"""
        return await run_in_batches(
            rows,
            self._resolve_row,
            batch_size=self.batch_size,
            pause=self.pause,
            on_error=self._on_error,
            sleep=self._sleep,
        )

    async def build_listing(self, rows: Sequence[RawRecord]) -> List[NormalizedRecord]:
        """Merge list rows with their resolved taxes"""
        resolutions = await self.resolve_all(rows)
        return [
            NormalizedRecord.from_sources(row, resolution)
            for row, resolution in zip(rows, resolutions)
        ]

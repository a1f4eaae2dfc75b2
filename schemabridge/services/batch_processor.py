"""Batched, concurrency-bounded migration of one entity's records."""

import asyncio
import inspect
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..errors import BatchWriteFailed
from ..models.migration import BatchError, BatchRunResult
from ..models.record import Record, TransformResult
from ..store.base import DocumentStore, TxOp

logger = logging.getLogger(__name__)

TransformFn = Callable[[Record], Union[TransformResult, Record, Any]]
ProgressCallback = Callable[[int, int], None]


class BatchMigrationProcessor:
    """
    Runs a transform over an entity's records in fixed-size batches.

    Batches are processed in waves of `max_concurrent_batches`; the next wave
    starts only after the whole current wave has finished. Each batch is
    written with one `transact` call and a failing batch never affects its
    siblings.
    """

    def __init__(
        self,
        store: DocumentStore,
        batch_size: int = 100,
        max_concurrent_batches: int = 3,
        progress_callback: Optional[ProgressCallback] = None
    ):
        """
        Initialize the processor.

        Args:
            store: Document store to read from and write to
            batch_size: Records per batch (one write per batch)
            max_concurrent_batches: Batches dispatched per wave
            progress_callback: Called with (processed, total) after every batch
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if max_concurrent_batches < 1:
            raise ValueError("max_concurrent_batches must be at least 1")

        self.store = store
        self.batch_size = batch_size
        self.max_concurrent_batches = max_concurrent_batches
        self.progress_callback = progress_callback
        self.progress: Optional[BatchRunResult] = None
        self._cancelled = False

    def cancel(self) -> None:
        """Stop scheduling new waves; the wave in flight runs to completion."""
        self._cancelled = True

    def partition(self, records: List[Record]) -> List[List[Record]]:
        return [
            records[i:i + self.batch_size]
            for i in range(0, len(records), self.batch_size)
        ]

    async def run(
        self,
        entity: str,
        transform_fn: TransformFn,
        scope: Optional[str] = None,
        records: Optional[List[Record]] = None
    ) -> BatchRunResult:
        """
        Migrate all records of an entity.

        Args:
            entity: Entity name
            transform_fn: Maps a stored record to a TransformResult or a plain record;
                may be a coroutine function
            scope: Tenant key; only records with this storeId are fetched
            records: Records to process instead of fetching them

        Returns:
            BatchRunResult with per-batch errors and per-record errors
        """
        self._cancelled = False

        if records is None:
            where = {"storeId": scope} if scope else None
            records = await self.store.fetch(entity, where=where)

        batches = self.partition(records)
        result = BatchRunResult(
            entity=entity,
            total_records=len(records),
            started_at=datetime.utcnow(),
        )
        self.progress = result

        logger.info(
            f"Migrating {len(records)} {entity} records in {len(batches)} batches "
            f"(batch size {self.batch_size}, {self.max_concurrent_batches} concurrent)"
        )

        for wave_start in range(0, len(batches), self.max_concurrent_batches):
            if self._cancelled:
                logger.warning(f"Migration of {entity} cancelled before batch {wave_start}")
                result.cancelled = True
                break

            wave = list(enumerate(batches[wave_start:wave_start + self.max_concurrent_batches], wave_start))
            await asyncio.gather(
                *(self._run_batch(entity, index, batch, transform_fn, result) for index, batch in wave),
                return_exceptions=True,
            )

        result.errors.sort(key=lambda e: e.batch_index)
        result.completed_at = datetime.utcnow()

        logger.info(
            f"Finished {entity}: {result.total_processed} processed, "
            f"{result.total_failed} failed, {len(result.errors)} failed batches"
        )
        return result

    async def _run_batch(
        self,
        entity: str,
        index: int,
        batch: List[Record],
        transform_fn: TransformFn,
        result: BatchRunResult
    ) -> None:
        try:
            failed, record_errors = await self._process_batch(entity, index, batch, transform_fn)
            result.total_failed += failed
            result.record_errors.extend(record_errors)
        except Exception as e:
            error = BatchWriteFailed(f"Batch {index} failed: {e}", entity=entity, batch_index=index)
            logger.error(error.message)
            result.errors.append(BatchError(batch_index=index, error=str(e), record_count=len(batch)))
            result.total_failed += len(batch)

        result.total_processed += len(batch)

        if self.progress_callback:
            try:
                self.progress_callback(result.total_processed, result.total_records)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")

    async def _process_batch(
        self,
        entity: str,
        index: int,
        batch: List[Record],
        transform_fn: TransformFn
    ) -> Tuple[int, List[Dict[str, Any]]]:
        """Transform one batch and write it; returns (invalid count, record errors)."""
        ops = []
        record_errors = []

        for record in batch:
            outcome = transform_fn(record)
            if inspect.isawaitable(outcome):
                outcome = await outcome

            if isinstance(outcome, TransformResult):
                if not outcome.is_valid:
                    record_errors.append({
                        "batchIndex": index,
                        "recordId": record.get("id"),
                        "errors": outcome.errors,
                    })
                    continue
                transformed = outcome.transformed_record
            else:
                transformed = outcome

            record_id = record.get("id")
            if record_id is None:
                record_errors.append({
                    "batchIndex": index,
                    "recordId": None,
                    "errors": ["Record has no id"],
                })
                continue

            if transformed != record:
                ops.append(TxOp.replace(entity, record_id, record, transformed))

        if ops:
            await self.store.transact(ops)

        return len(record_errors), record_errors

"""
Compliance Application Services
===============================

Application services orchestrate the compliance watchdog pipeline:

    THRESHOLD -> QUERY -> DEDUP -> WRITE_ALERTS -> UPDATE_STATUS

Every stage talks to the backing store through the `IDocumentStore`
capability, so the pipeline runs unchanged against PostgreSQL or the
in-memory store used in tests.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple, TypeVar
from uuid import uuid4

from vericlean.compliance.application.dto import (
    Cursor, FieldFilter, StoredDocument, WatchdogRunSummary, WriteOperation
)
from vericlean.compliance.domain import (
    Alert, Checkpoint, SLAConfig, SLAPolicy, SLAPolicyResolver, ThresholdCalculator
)
from vericlean.config import (
    AlertStatus, AlertType, CheckpointStatus, Collections,
    DEFAULT_BREACH_SEVERITY, WatchdogOutcome, WatchdogStage
)
from vericlean.core import BatchCommitException, WatchdogStageError
from vericlean.shared.infrastructure.logging import (
    get_context_logger, get_logger, log_latency
)

logger = get_logger(__name__)

T = TypeVar("T")


# ========== Store Interfaces (Dependency Inversion) ==========

class IDocumentStore(ABC):
    """
    Capability interface over the document store.

    Implementations must reject an `in` filter longer than `max_in_values`
    and a batch longer than `max_batch_operations`.
    """

    max_in_values: int = 10
    max_batch_operations: int = 500

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: Sequence[FieldFilter],
        order_by: Sequence[str] = (),
        limit: Optional[int] = None,
        start_after: Optional[Cursor] = None
    ) -> List[StoredDocument]:
        """Run one filtered query, ascending on `order_by`."""

    @abstractmethod
    async def commit_batch(self, operations: Sequence[WriteOperation]) -> int:
        """
        Apply all operations atomically, or none of them.

        Returns the number of operations that changed the store; a create
        absorbed by an existing document does not count.
        """


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Split `items` into consecutive lists of at most `size` elements."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


# ========== Pipeline Components ==========

class OverdueQueryEngine:
    """
    Finds active checkpoints whose last cleaning precedes a cutoff.

    Served by the compound index (is_active, last_cleaned_timestamp). With
    `page_size` set, results are fetched in keyset pages ordered by
    (last_cleaned_timestamp, id); the number of pages depends only on the
    number of overdue checkpoints.
    """

    ORDER_BY = ("last_cleaned_timestamp", "id")

    def __init__(self, store: IDocumentStore, page_size: int = 0):
        self._store = store
        self._page_size = page_size
        self.queries_issued = 0

    async def find_overdue(self, cutoff: datetime) -> List[Checkpoint]:
        filters = [
            FieldFilter("is_active", "==", True),
            FieldFilter("last_cleaned_timestamp", "<", cutoff),
        ]
        self.queries_issued = 0

        if not self._page_size:
            docs = await self._store.query(
                Collections.CHECKPOINTS, filters, order_by=self.ORDER_BY
            )
            self.queries_issued = 1
        else:
            docs = await self._paginate(filters)

        return [Checkpoint.from_document(doc.id, doc.data) for doc in docs]

    async def _paginate(self, filters: List[FieldFilter]) -> List[StoredDocument]:
        docs: List[StoredDocument] = []
        cursor: Optional[Cursor] = None

        while True:
            page = await self._store.query(
                Collections.CHECKPOINTS,
                filters,
                order_by=self.ORDER_BY,
                limit=self._page_size,
                start_after=cursor
            )
            self.queries_issued += 1
            docs.extend(page)

            if len(page) < self._page_size:
                return docs

            last = page[-1]
            cursor = (last.data.get("last_cleaned_timestamp"), last.id)


@dataclass
class DedupResult:
    """Overdue checkpoints split by whether an open breach alert exists."""
    unalerted: List[str] = field(default_factory=list)
    already_alerted: Set[str] = field(default_factory=set)
    queries_issued: int = 0


class AlertDeduplicator:
    """
    Filters out checkpoints that already have an OPEN missing-clean alert.

    The membership test is chunked to the store's `in` limit. Chunk queries
    may run concurrently (bounded by `max_concurrency`); all of them must
    succeed before any answer is produced.
    """

    def __init__(
        self,
        store: IDocumentStore,
        chunk_size: Optional[int] = None,
        max_concurrency: int = 1
    ):
        self._store = store
        self._chunk_size = min(chunk_size or store.max_in_values, store.max_in_values)
        self._max_concurrency = max(1, max_concurrency)

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    async def partition(self, checkpoint_ids: Sequence[str]) -> DedupResult:
        unique_ids = list(dict.fromkeys(checkpoint_ids))
        if not unique_ids:
            return DedupResult()

        chunks = chunked(unique_ids, self._chunk_size)
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def open_alerts_for(chunk: List[str]) -> Set[str]:
            async with semaphore:
                docs = await self._store.query(
                    Collections.ALERTS,
                    [
                        FieldFilter("checkpoint_id", "in", chunk),
                        FieldFilter("type", "==", AlertType.SLA_MISSING_CLEAN),
                        FieldFilter("status", "==", AlertStatus.OPEN),
                    ]
                )
            return {doc.data.get("checkpoint_id") for doc in docs}

        results = await asyncio.gather(
            *(open_alerts_for(chunk) for chunk in chunks),
            return_exceptions=True
        )

        # Partial dedup data would risk duplicate alerts
        for result in results:
            if isinstance(result, BaseException):
                raise result

        already_alerted: Set[str] = set()
        for found in results:
            already_alerted |= found
        already_alerted &= set(unique_ids)

        return DedupResult(
            unalerted=[cp_id for cp_id in unique_ids if cp_id not in already_alerted],
            already_alerted=already_alerted,
            queries_issued=len(chunks)
        )

    async def find_unalerted(self, checkpoint_ids: Sequence[str]) -> List[str]:
        """Subset of `checkpoint_ids` with no open breach alert."""
        return (await self.partition(checkpoint_ids)).unalerted


class AlertWriter:
    """
    Builds missing-clean alerts and commits them in bounded batches.

    Alert creation and the checkpoint status transition are two separate
    batch sequences; they are not atomic with respect to each other.
    """

    def __init__(
        self,
        store: IDocumentStore,
        batch_limit: Optional[int] = None,
        severity: str = DEFAULT_BREACH_SEVERITY
    ):
        self._store = store
        self._batch_limit = min(batch_limit or store.max_batch_operations, store.max_batch_operations)
        self._severity = severity

    @property
    def batch_limit(self) -> int:
        return self._batch_limit

    def build_alert(self, checkpoint: Checkpoint, policy: SLAPolicy, now: datetime) -> Alert:
        threshold_hours = policy.threshold_hours
        last_cleaned_at = checkpoint.last_cleaned_iso

        if checkpoint.never_serviced:
            message = f"Area has no recorded cleaning (SLA: every {threshold_hours} hours)."
        else:
            message = f"Area has not been cleaned in over {threshold_hours} hours."

        return Alert(
            id=Alert.breach_key(checkpoint.id, AlertType.SLA_MISSING_CLEAN, last_cleaned_at),
            checkpoint_id=checkpoint.id,
            building_id=checkpoint.building_id,
            message=message,
            hours_overdue=ThresholdCalculator.calculate_hours_overdue(
                now, checkpoint.last_cleaned_timestamp
            ),
            sla_threshold_hours=threshold_hours,
            last_cleaned_at=last_cleaned_at,
            created_at=now,
            severity=self._severity,
        )

    async def write_alerts(self, alerts: Sequence[Alert]) -> int:
        """Create alerts; returns how many were inserted."""
        operations = [
            WriteOperation("create", Collections.ALERTS, alert.id, alert.to_document())
            for alert in alerts
        ]
        return await self._commit_in_batches(operations, "alert")

    async def mark_overdue(self, checkpoint_ids: Sequence[str]) -> int:
        operations = [
            WriteOperation(
                "update",
                Collections.CHECKPOINTS,
                cp_id,
                {"current_status": CheckpointStatus.OVERDUE}
            )
            for cp_id in dict.fromkeys(checkpoint_ids)
        ]
        return await self._commit_in_batches(operations, "status")

    async def _commit_in_batches(self, operations: List[WriteOperation], label: str) -> int:
        committed = 0
        applied = 0
        for batch in chunked(operations, self._batch_limit):
            try:
                applied += await self._store.commit_batch(batch)
            except Exception as e:
                raise BatchCommitException(
                    f"{label} batch commit failed after {committed} of {len(operations)} writes",
                    committed=committed,
                    attempted=len(operations),
                    details={"batch": label, "error": str(e)}
                ) from e
            committed += len(batch)
            logger.debug(
                "Write batch committed",
                extra={"batch": label, "size": len(batch), "committed": committed, "applied": applied}
            )
        return applied


# ========== Application Services ==========

class ComplianceWatchdog:
    """
    Periodic SLA evaluator for all active checkpoints.

    One invocation is a single sequential pass; it never retries. A failed
    run raises WatchdogStageError and the scheduler's next tick is the retry.
    Query and dedup failures happen before any write.
    """

    def __init__(
        self,
        store: IDocumentStore,
        config_provider: ISLAConfigProvider,
        page_size: int = 0,
        chunk_size: Optional[int] = None,
        dedup_concurrency: int = 1,
        batch_limit: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self._store = store
        self._config_provider = config_provider
        self._batch_limit = batch_limit
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.query_engine = OverdueQueryEngine(store, page_size=page_size)
        self.deduplicator = AlertDeduplicator(
            store, chunk_size=chunk_size, max_concurrency=dedup_concurrency
        )

    async def run(self) -> WatchdogRunSummary:
        run_id = uuid4().hex
        run_logger = get_context_logger(__name__, run_id)
        now = self._clock()
        started = time.perf_counter()
        stage = WatchdogStage.START
        counts: Dict[str, int] = {}

        run_logger.info("Compliance watchdog run started", extra={"now": now.isoformat()})

        def finish(outcome: str, cutoff: Optional[datetime]) -> WatchdogRunSummary:
            summary = WatchdogRunSummary(
                run_id=run_id,
                started_at=now,
                cutoff=cutoff,
                outcome=outcome,
                duration_ms=int((time.perf_counter() - started) * 1000),
                **counts
            )
            run_logger.info(
                "Compliance watchdog run finished",
                extra={"outcome": outcome, "duration_ms": summary.duration_ms, **summary.counts()}
            )
            return summary

        try:
            stage = WatchdogStage.THRESHOLD
            resolver = SLAPolicyResolver(self._config_provider.get_config())
            query_policy = resolver.strictest_policy()
            cutoff = ThresholdCalculator.calculate_cutoff(now, query_policy)

            stage = WatchdogStage.QUERY
            with log_latency(run_logger, "overdue_query", cutoff=cutoff.isoformat()):
                candidates = await self.query_engine.find_overdue(cutoff)
            overdue = self._apply_building_policies(candidates, resolver, now)
            counts["overdue_count"] = len(overdue)

            if not overdue:
                return finish(WatchdogOutcome.NO_OVERDUE, cutoff)

            stage = WatchdogStage.DEDUP
            with log_latency(run_logger, "open_alert_dedup", overdue_count=len(overdue)):
                dedup = await self.deduplicator.partition([cp.id for cp, _ in overdue])
            counts["already_alerted_count"] = len(dedup.already_alerted)
            counts["deduplicated_count"] = len(dedup.unalerted)

            # Alerted earlier but the status batch of that run never landed
            stale_status = [
                cp.id for cp, _ in overdue
                if cp.id in dedup.already_alerted and not cp.is_marked_overdue
            ]

            if not dedup.unalerted and not stale_status:
                return finish(WatchdogOutcome.ALL_DUPLICATE, cutoff)

            stage = WatchdogStage.WRITE_ALERTS
            writer = AlertWriter(
                self._store,
                batch_limit=self._batch_limit,
                severity=resolver.breach_severity
            )
            needs_alert = set(dedup.unalerted)
            alerted = [(cp, policy) for cp, policy in overdue if cp.id in needs_alert]
            alerts = [writer.build_alert(cp, policy, now) for cp, policy in alerted]
            with log_latency(run_logger, "alert_write", alerts=len(alerts)):
                counts["alerts_created"] = await writer.write_alerts(alerts)

            suppressed = len(alerts) - counts["alerts_created"]
            if suppressed:
                # Breach key already present: closed episode or a concurrent run
                run_logger.info(
                    "Alerts already recorded for these breach episodes; not re-raised",
                    extra={"suppressed": suppressed}
                )

            stage = WatchdogStage.UPDATE_STATUS
            to_mark = [cp.id for cp, _ in alerted if not cp.is_marked_overdue] + stale_status
            try:
                with log_latency(run_logger, "status_update", checkpoints=len(to_mark)):
                    counts["statuses_updated"] = await writer.mark_overdue(to_mark)
            except BatchCommitException as e:
                run_logger.warning(
                    "Alerts committed but checkpoint status update failed; "
                    "statuses stay stale until the next run",
                    extra={"status_committed": e.committed, "status_attempted": e.attempted, **counts}
                )
                raise

            if counts["alerts_created"]:
                return finish(WatchdogOutcome.ALERTS_CREATED, cutoff)
            if counts["statuses_updated"]:
                return finish(WatchdogOutcome.STATUS_RECONCILED, cutoff)
            return finish(WatchdogOutcome.ALL_DUPLICATE, cutoff)

        except Exception as e:
            run_logger.error(
                "Compliance watchdog run failed",
                extra={"stage": stage, "error": str(e), "error_type": type(e).__name__, **counts}
            )
            raise WatchdogStageError(stage, dict(counts), e) from e

    @staticmethod
    def _apply_building_policies(
        candidates: Sequence[Checkpoint],
        resolver: SLAPolicyResolver,
        now: datetime
    ) -> List[Tuple[Checkpoint, SLAPolicy]]:
        """Keep candidates that breach their own building's policy."""
        overdue = []
        for checkpoint in candidates:
            policy = resolver.resolve(checkpoint.building_id)
            cutoff = ThresholdCalculator.calculate_cutoff(now, policy)
            if ThresholdCalculator.is_overdue(checkpoint.last_cleaned_timestamp, cutoff):
                overdue.append((checkpoint, policy))
        return overdue


class AlertQueryService:
    """Read-side helper listing open missing-clean alerts."""

    def __init__(self, store: IDocumentStore):
        self._store = store

    async def list_open_alerts(
        self,
        building_id: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Alert]:
        filters = [
            FieldFilter("type", "==", AlertType.SLA_MISSING_CLEAN),
            FieldFilter("status", "==", AlertStatus.OPEN),
        ]
        if building_id:
            filters.append(FieldFilter("building_id", "==", building_id))

        docs = await self._store.query(
            Collections.ALERTS, filters, order_by=("created_at", "id"), limit=limit
        )
        return [Alert.from_document(doc.id, doc.data) for doc in docs]

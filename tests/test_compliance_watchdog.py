import asyncio
from datetime import timedelta

import pytest

from conftest import NOW, seed_checkpoint, seed_open_alert
from vericlean.compliance.application import (
    AlertDeduplicator, AlertQueryService, FieldFilter, OverdueQueryEngine, chunked
)
from vericlean.compliance.domain import SLAConfig
from vericlean.compliance.infrastructure import InMemoryDocumentStore
from vericlean.config import CheckpointStatus, Collections, WatchdogOutcome, WatchdogStage
from vericlean.core import RepositoryException, StoreLimitExceeded, WatchdogStageError


def _open_alerts(store):
    return [doc for doc in store.all(Collections.ALERTS) if doc.data["status"] == "OPEN"]


def _status(store, checkpoint_id):
    return store.get(Collections.CHECKPOINTS, checkpoint_id)["current_status"]


# ========== Threshold ==========

def test_five_hours_since_cleaning_breaches_four_hour_sla(store, make_watchdog):
    seed_checkpoint(store, "cp-1", hours_ago=5)

    summary = asyncio.run(make_watchdog(store).run())

    assert summary.outcome == WatchdogOutcome.ALERTS_CREATED
    assert summary.alerts_created == 1
    [alert] = _open_alerts(store)
    assert alert.data["checkpoint_id"] == "cp-1"
    assert alert.data["type"] == "SLA_MISSING_CLEAN"
    assert alert.data["severity"] == "MEDIUM"
    assert alert.data["message"] == "Area has not been cleaned in over 4 hours."
    assert alert.data["details"] == {"hours_overdue": 5.0, "sla_threshold_hours": 4}
    assert alert.data["created_at"] == NOW
    assert _status(store, "cp-1") == CheckpointStatus.OVERDUE


def test_cleaned_exactly_at_cutoff_is_not_flagged(store, make_watchdog):
    seed_checkpoint(store, "cp-1", hours_ago=4)
    seed_checkpoint(store, "cp-2", hours_ago=3.99)

    summary = asyncio.run(make_watchdog(store).run())

    assert summary.outcome == WatchdogOutcome.NO_OVERDUE
    assert summary.overdue_count == 0


def test_inactive_checkpoints_are_ignored(store, make_watchdog):
    seed_checkpoint(store, "cp-1", hours_ago=48, is_active=False)

    summary = asyncio.run(make_watchdog(store).run())

    assert summary.outcome == WatchdogOutcome.NO_OVERDUE
    assert store.all(Collections.ALERTS) == []


def test_never_cleaned_checkpoint_is_alerted_with_zero_hours(store, make_watchdog):
    seed_checkpoint(store, "cp-new", hours_ago=None, status=CheckpointStatus.UNKNOWN)

    asyncio.run(make_watchdog(store).run())

    [alert] = _open_alerts(store)
    assert alert.data["details"]["hours_overdue"] == 0.0
    assert alert.data["message"] == "Area has no recorded cleaning (SLA: every 4 hours)."
    assert _status(store, "cp-new") == CheckpointStatus.OVERDUE


# ========== Query ==========

def test_single_overdue_query_regardless_of_buildings(store, make_watchdog):
    for building in range(20):
        for n in range(5):
            seed_checkpoint(store, f"cp-{building}-{n}", hours_ago=6, building_id=f"bldg-{building}")

    asyncio.run(make_watchdog(store).run())

    [filters] = store.queries_on(Collections.CHECKPOINTS)
    assert {(f.field, f.op) for f in filters} == {
        ("is_active", "=="), ("last_cleaned_timestamp", "<")
    }


def test_paged_query_count_depends_only_on_overdue_count(store):
    for n in range(7):
        seed_checkpoint(store, f"overdue-{n}", hours_ago=10 + n)
    for n in range(50):
        seed_checkpoint(store, f"fresh-{n}", hours_ago=1)

    engine = OverdueQueryEngine(store, page_size=3)
    found = asyncio.run(engine.find_overdue(NOW - timedelta(hours=4)))

    assert sorted(cp.id for cp in found) == sorted(f"overdue-{n}" for n in range(7))
    assert engine.queries_issued == 3
    assert len({cp.id for cp in found}) == 7


def test_paged_query_stops_after_exact_multiple(store):
    for n in range(6):
        seed_checkpoint(store, f"overdue-{n}", hours_ago=10)

    engine = OverdueQueryEngine(store, page_size=3)
    found = asyncio.run(engine.find_overdue(NOW - timedelta(hours=4)))

    assert len(found) == 6
    assert engine.queries_issued == 3


def test_query_failure_aborts_before_any_write(store, make_watchdog):
    seed_checkpoint(store, "cp-1", hours_ago=5)
    store.fail_query(Collections.CHECKPOINTS, RepositoryException("unavailable"))

    with pytest.raises(WatchdogStageError) as exc_info:
        asyncio.run(make_watchdog(store).run())

    assert exc_info.value.stage == WatchdogStage.QUERY
    assert store.batches == []


# ========== Dedup ==========

def test_chunked_splits_into_bounded_lists():
    assert chunked(list(range(25)), 10) == [list(range(10)), list(range(10, 20)), list(range(20, 25))]
    assert chunked([], 10) == []
    with pytest.raises(ValueError):
        chunked([1], 0)


def test_dedup_issues_ceil_n_over_ten_queries(store):
    ids = [f"cp-{n}" for n in range(25)]
    seed_open_alert(store, "cp-3")
    seed_open_alert(store, "cp-24")

    result = asyncio.run(AlertDeduplicator(store, max_concurrency=3).partition(ids))

    assert result.queries_issued == 3
    assert len(store.queries_on(Collections.ALERTS)) == 3
    assert all(len(filters[0].value) <= 10 for filters in store.queries_on(Collections.ALERTS))
    assert result.already_alerted == {"cp-3", "cp-24"}
    assert result.unalerted == [cp for cp in ids if cp not in {"cp-3", "cp-24"}]


def test_dedup_ignores_closed_and_other_alert_types(store):
    seed_open_alert(store, "cp-1")
    store.add(Collections.ALERTS, "closed", {
        "checkpoint_id": "cp-2", "type": "SLA_MISSING_CLEAN", "status": "CLOSED"
    })
    store.add(Collections.ALERTS, "quality", {
        "checkpoint_id": "cp-3", "type": "QUALITY_FAILURE", "status": "OPEN"
    })

    unalerted = asyncio.run(AlertDeduplicator(store).find_unalerted(["cp-1", "cp-2", "cp-3"]))

    assert unalerted == ["cp-2", "cp-3"]


def test_dedup_chunk_never_exceeds_store_limit():
    store = InMemoryDocumentStore(max_in_values=10)
    assert AlertDeduplicator(store, chunk_size=50).chunk_size == 10


def test_store_rejects_oversized_membership_filter(store):
    with pytest.raises(StoreLimitExceeded):
        asyncio.run(store.query(Collections.ALERTS, [FieldFilter("checkpoint_id", "in", list(range(11)))]))


def test_failed_dedup_chunk_aborts_run_without_writes(store, make_watchdog):
    for n in range(25):
        seed_checkpoint(store, f"cp-{n:02d}", hours_ago=6)
    store.fail_query(Collections.ALERTS, RepositoryException("deadline exceeded"), call_number=2)

    with pytest.raises(WatchdogStageError) as exc_info:
        asyncio.run(make_watchdog(store, dedup_concurrency=4).run())

    assert exc_info.value.stage == WatchdogStage.DEDUP
    assert exc_info.value.counts["overdue_count"] == 25
    assert isinstance(exc_info.value.__cause__, RepositoryException)
    assert store.batches == []
    assert store.all(Collections.ALERTS) == []


def test_already_alerted_checkpoints_are_skipped(store, make_watchdog):
    seed_checkpoint(store, "cp-1", hours_ago=6, status=CheckpointStatus.OVERDUE)
    seed_checkpoint(store, "cp-2", hours_ago=6)
    seed_open_alert(store, "cp-1")

    summary = asyncio.run(make_watchdog(store).run())

    assert summary.already_alerted_count == 1
    assert summary.alerts_created == 1
    assert sorted(doc.data["checkpoint_id"] for doc in _open_alerts(store)) == ["cp-1", "cp-2"]


def test_all_duplicate_run_writes_nothing(store, make_watchdog):
    seed_checkpoint(store, "cp-1", hours_ago=6, status=CheckpointStatus.OVERDUE)
    seed_open_alert(store, "cp-1")

    summary = asyncio.run(make_watchdog(store).run())

    assert summary.outcome == WatchdogOutcome.ALL_DUPLICATE
    assert store.batches == []


# ========== Writes ==========

def test_empty_run_short_circuits(store, make_watchdog):
    seed_checkpoint(store, "cp-1", hours_ago=1)

    summary = asyncio.run(make_watchdog(store).run())

    assert summary.outcome == WatchdogOutcome.NO_OVERDUE
    assert store.queries_on(Collections.ALERTS) == []
    assert store.batches == []


def test_second_run_creates_no_duplicates(store, make_watchdog):
    for n in range(12):
        seed_checkpoint(store, f"cp-{n}", hours_ago=7)
    watchdog = make_watchdog(store)

    first = asyncio.run(watchdog.run())
    second = asyncio.run(watchdog.run())

    assert first.alerts_created == 12
    assert second.outcome == WatchdogOutcome.ALL_DUPLICATE
    assert len(store.all(Collections.ALERTS)) == 12


def test_batches_respect_write_limit(make_watchdog):
    store = InMemoryDocumentStore(max_in_values=10, max_batch_operations=500)
    for n in range(1200):
        seed_checkpoint(store, f"cp-{n:04d}", hours_ago=9)

    summary = asyncio.run(make_watchdog(store, dedup_concurrency=8).run())

    assert summary.alerts_created == 1200
    assert summary.statuses_updated == 1200
    assert [len(batch) for batch in store.batches] == [500, 500, 200, 500, 500, 200]
    assert all(op.kind == "create" for batch in store.batches[:3] for op in batch)
    assert all(op.kind == "update" for batch in store.batches[3:] for op in batch)
    assert len(store.queries_on(Collections.ALERTS)) == 120


def test_configured_batch_limit_below_store_limit(store, make_watchdog):
    for n in range(5):
        seed_checkpoint(store, f"cp-{n}", hours_ago=9)

    asyncio.run(make_watchdog(store, batch_limit=2).run())

    assert [len(batch) for batch in store.batches] == [2, 2, 1, 2, 2, 1]


def test_status_failure_keeps_alerts_and_next_run_reconciles(store, make_watchdog):
    for n in range(3):
        seed_checkpoint(store, f"cp-{n}", hours_ago=8)
    store.fail_commit(RepositoryException("write contention"), batch_number=2)
    watchdog = make_watchdog(store)

    with pytest.raises(WatchdogStageError) as exc_info:
        asyncio.run(watchdog.run())

    assert exc_info.value.stage == WatchdogStage.UPDATE_STATUS
    assert exc_info.value.counts["alerts_created"] == 3
    assert len(_open_alerts(store)) == 3
    assert {_status(store, f"cp-{n}") for n in range(3)} == {CheckpointStatus.CLEAN}

    summary = asyncio.run(watchdog.run())

    assert summary.outcome == WatchdogOutcome.STATUS_RECONCILED
    assert summary.alerts_created == 0
    assert summary.statuses_updated == 3
    assert len(store.all(Collections.ALERTS)) == 3
    assert {_status(store, f"cp-{n}") for n in range(3)} == {CheckpointStatus.OVERDUE}


def test_alert_failure_reports_write_stage(store, make_watchdog):
    seed_checkpoint(store, "cp-1", hours_ago=8)
    store.fail_commit(RepositoryException("unavailable"), batch_number=1)

    with pytest.raises(WatchdogStageError) as exc_info:
        asyncio.run(make_watchdog(store).run())

    assert exc_info.value.stage == WatchdogStage.WRITE_ALERTS
    assert store.all(Collections.ALERTS) == []
    assert _status(store, "cp-1") == CheckpointStatus.CLEAN


def test_concurrent_detection_of_same_breach_is_absorbed(store, make_watchdog):
    seed_checkpoint(store, "cp-1", hours_ago=8)

    async def run_both():
        first = make_watchdog(store)
        second = make_watchdog(store)
        return await asyncio.gather(first.run(), second.run())

    first, second = asyncio.run(run_both())

    assert len(store.all(Collections.ALERTS)) == 1
    assert first.alerts_created + second.alerts_created == 1


def test_closed_breach_episode_is_not_reported_as_created(store, make_watchdog):
    seed_checkpoint(store, "cp-1", hours_ago=8)
    watchdog = make_watchdog(store)
    asyncio.run(watchdog.run())
    [alert] = store.all(Collections.ALERTS)
    store.add(Collections.ALERTS, alert.id, {**alert.data, "status": "CLOSED"})

    second = asyncio.run(watchdog.run())
    third = asyncio.run(watchdog.run())

    for summary in (second, third):
        assert summary.outcome == WatchdogOutcome.ALL_DUPLICATE
        assert summary.deduplicated_count == 1
        assert summary.alerts_created == 0
        assert summary.statuses_updated == 0
    assert _open_alerts(store) == []
    assert len(store.all(Collections.ALERTS)) == 1


def test_next_cleaning_starts_a_new_breach_episode(store, make_watchdog):
    seed_checkpoint(store, "cp-1", hours_ago=8)
    watchdog = make_watchdog(store)
    asyncio.run(watchdog.run())
    [alert] = store.all(Collections.ALERTS)
    store.add(Collections.ALERTS, alert.id, {**alert.data, "status": "CLOSED"})
    seed_checkpoint(store, "cp-1", hours_ago=6, status=CheckpointStatus.CLEAN)

    summary = asyncio.run(watchdog.run())

    assert summary.outcome == WatchdogOutcome.ALERTS_CREATED
    assert summary.alerts_created == 1
    [reopened] = _open_alerts(store)
    assert reopened.id != alert.id


def test_memory_store_reads_naive_timestamps_as_utc(store, make_watchdog):
    naive = (NOW - timedelta(hours=8)).replace(tzinfo=None)
    store.add(Collections.CHECKPOINTS, "cp-1", {
        "building_id": "bldg-1",
        "is_active": True,
        "last_cleaned_timestamp": naive,
        "last_cleaned_at": naive.isoformat(),
        "current_status": CheckpointStatus.CLEAN,
    })

    summary = asyncio.run(make_watchdog(store).run())

    assert summary.alerts_created == 1
    stored = store.get(Collections.CHECKPOINTS, "cp-1")["last_cleaned_timestamp"]
    assert stored == NOW - timedelta(hours=8)


# ========== Policies ==========

def test_building_override_is_applied_per_checkpoint(store, make_watchdog):
    config = SLAConfig(default_max_gap_hours=4, building_overrides={"clinic": 2, "annex": 12})
    seed_checkpoint(store, "clinic-cp", hours_ago=3, building_id="clinic")
    seed_checkpoint(store, "office-cp", hours_ago=3, building_id="office")
    seed_checkpoint(store, "annex-cp", hours_ago=6, building_id="annex")
    seed_checkpoint(store, "annex-late", hours_ago=13, building_id="annex")

    summary = asyncio.run(make_watchdog(store, config=config).run())

    assert summary.overdue_count == 2
    assert summary.cutoff == NOW - timedelta(hours=2)
    assert len(store.queries_on(Collections.CHECKPOINTS)) == 1
    alerts = {doc.data["checkpoint_id"]: doc.data for doc in _open_alerts(store)}
    assert set(alerts) == {"clinic-cp", "annex-late"}
    assert alerts["clinic-cp"]["details"]["sla_threshold_hours"] == 2
    assert alerts["annex-late"]["message"] == "Area has not been cleaned in over 12 hours."


def test_breach_severity_comes_from_config(store, make_watchdog):
    seed_checkpoint(store, "cp-1", hours_ago=8)

    asyncio.run(make_watchdog(store, config=SLAConfig(breach_severity="HIGH")).run())

    [alert] = _open_alerts(store)
    assert alert.data["severity"] == "HIGH"


# ========== Read side ==========

def test_open_alert_listing_filters_by_building(store, make_watchdog):
    seed_checkpoint(store, "a-1", hours_ago=8, building_id="bldg-a")
    seed_checkpoint(store, "b-1", hours_ago=8, building_id="bldg-b")
    asyncio.run(make_watchdog(store).run())

    service = AlertQueryService(store)
    everything = asyncio.run(service.list_open_alerts())
    only_a = asyncio.run(service.list_open_alerts(building_id="bldg-a"))

    assert len(everything) == 2
    assert [alert.checkpoint_id for alert in only_a] == ["a-1"]
    assert only_a[0].hours_overdue == 8.0

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from conftest import NOW
from vericlean.compliance.application import FieldFilter, WriteOperation
from vericlean.compliance.infrastructure import SQLAlchemyDocumentStore
from vericlean.config import CheckpointStatus, Collections, WatchdogOutcome
from vericlean.core import RepositoryException, StoreLimitExceeded, ValidationException
from vericlean.infrastructure.database import Base


def _checkpoint(checkpoint_id, hours_ago, is_active=True, building_id="bldg-1"):
    last = NOW - timedelta(hours=hours_ago)
    return WriteOperation("create", Collections.CHECKPOINTS, checkpoint_id, {
        "building_id": building_id,
        "is_active": is_active,
        "last_cleaned_timestamp": last,
        "last_cleaned_at": last.isoformat(),
        "current_status": CheckpointStatus.CLEAN,
    })


def _with_store(tmp_path, scenario):
    async def _run():
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'vericlean.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        store = SQLAlchemyDocumentStore(async_sessionmaker(engine, expire_on_commit=False))
        try:
            return await scenario(store)
        finally:
            await engine.dispose()

    return asyncio.run(_run())


def test_paged_watchdog_runs_against_sql_store(tmp_path, make_watchdog):
    async def scenario(store):
        seed = [_checkpoint(f"cp-{n:02d}", hours_ago=5 + n) for n in range(25)]
        seed += [_checkpoint("fresh", hours_ago=1), _checkpoint("retired", hours_ago=48, is_active=False)]
        await store.commit_batch(seed)

        watchdog = make_watchdog(store, page_size=7, dedup_concurrency=4)
        first = await watchdog.run()
        second = await watchdog.run()
        alerts = await store.query(Collections.ALERTS, [])
        overdue = await store.query(
            Collections.CHECKPOINTS,
            [FieldFilter("current_status", "==", CheckpointStatus.OVERDUE)]
        )
        return first, second, alerts, overdue

    first, second, alerts, overdue = _with_store(tmp_path, scenario)

    assert first.outcome == WatchdogOutcome.ALERTS_CREATED
    assert first.overdue_count == 25
    assert first.alerts_created == 25
    assert first.statuses_updated == 25
    assert second.outcome == WatchdogOutcome.ALL_DUPLICATE
    assert second.already_alerted_count == 25
    assert second.alerts_created == 0
    assert len(alerts) == 25
    assert {doc.data["checkpoint_id"] for doc in alerts} == {f"cp-{n:02d}" for n in range(25)}
    assert len(overdue) == 25


def test_closed_alert_is_not_counted_again(tmp_path, make_watchdog):
    async def scenario(store):
        await store.commit_batch([_checkpoint("cp-1", hours_ago=8)])
        watchdog = make_watchdog(store)
        await watchdog.run()
        [alert] = await store.query(Collections.ALERTS, [])
        await store.commit_batch([
            WriteOperation("update", Collections.ALERTS, alert.id, {"status": "CLOSED"})
        ])
        return await watchdog.run(), await store.query(Collections.ALERTS, [])

    summary, alerts = _with_store(tmp_path, scenario)

    assert summary.outcome == WatchdogOutcome.ALL_DUPLICATE
    assert summary.alerts_created == 0
    assert [doc.data["status"] for doc in alerts] == ["CLOSED"]


def test_create_if_absent_reports_inserted_rows(tmp_path):
    async def scenario(store):
        first = await store.commit_batch([_checkpoint("cp-1", hours_ago=2)])
        again = await store.commit_batch([_checkpoint("cp-1", hours_ago=30), _checkpoint("cp-2", hours_ago=3)])
        rows = await store.query(Collections.CHECKPOINTS, [], order_by=["id"])
        return first, again, rows

    first, again, rows = _with_store(tmp_path, scenario)

    assert (first, again) == (1, 1)
    assert [doc.id for doc in rows] == ["cp-1", "cp-2"]
    assert rows[0].data["last_cleaned_at"] == (NOW - timedelta(hours=2)).isoformat()


def test_update_of_missing_row_rolls_back_batch(tmp_path):
    async def scenario(store):
        with pytest.raises(RepositoryException, match="not found"):
            await store.commit_batch([
                _checkpoint("cp-1", hours_ago=2),
                WriteOperation("update", Collections.CHECKPOINTS, "ghost", {"current_status": "OVERDUE"}),
            ])
        return await store.query(Collections.CHECKPOINTS, [])

    assert _with_store(tmp_path, scenario) == []


def test_filter_translation_and_keyset_paging(tmp_path):
    async def scenario(store):
        await store.commit_batch([
            _checkpoint("a", hours_ago=3, building_id="north"),
            _checkpoint("b", hours_ago=3, building_id="south"),
            _checkpoint("c", hours_ago=6, building_id="north"),
            _checkpoint("d", hours_ago=9, building_id="east"),
        ])
        order = ["last_cleaned_timestamp", "id"]
        in_buildings = await store.query(
            Collections.CHECKPOINTS, [FieldFilter("building_id", "in", ["north", "east"])], order_by=["id"]
        )
        older = await store.query(
            Collections.CHECKPOINTS,
            [FieldFilter("last_cleaned_timestamp", "<=", NOW - timedelta(hours=6))],
            order_by=order
        )
        first_page = await store.query(Collections.CHECKPOINTS, [], order_by=order, limit=2)
        last = first_page[-1]
        next_page = await store.query(
            Collections.CHECKPOINTS, [], order_by=order, limit=2,
            start_after=(last.data["last_cleaned_timestamp"], last.id)
        )
        return in_buildings, older, first_page, next_page

    in_buildings, older, first_page, next_page = _with_store(tmp_path, scenario)

    assert [doc.id for doc in in_buildings] == ["a", "c", "d"]
    assert [doc.id for doc in older] == ["d", "c"]
    assert [doc.id for doc in first_page] == ["d", "c"]
    assert [doc.id for doc in next_page] == ["a", "b"]


def test_store_limits_and_unknown_fields(tmp_path):
    async def scenario(store):
        with pytest.raises(StoreLimitExceeded):
            await store.query(Collections.ALERTS, [FieldFilter("checkpoint_id", "in", [str(n) for n in range(11)])])
        with pytest.raises(StoreLimitExceeded):
            await store.commit_batch([_checkpoint(f"cp-{n}", hours_ago=1) for n in range(501)])
        with pytest.raises(ValidationException, match="Unknown field"):
            await store.query(Collections.CHECKPOINTS, [FieldFilter("floor", "==", 2)])
        return await store.query(Collections.CHECKPOINTS, [])

    assert _with_store(tmp_path, scenario) == []

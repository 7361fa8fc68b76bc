from datetime import datetime, timedelta, timezone

import pytest

from vericlean.compliance.application import ComplianceWatchdog, ISLAConfigProvider
from vericlean.compliance.domain import EPOCH, SLAConfig
from vericlean.compliance.infrastructure import InMemoryDocumentStore
from vericlean.config import CheckpointStatus, Collections


NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class StaticSLAConfig(ISLAConfigProvider):
    def __init__(self, config: SLAConfig):
        self.config = config

    def get_config(self) -> SLAConfig:
        return self.config


def seed_checkpoint(
    store: InMemoryDocumentStore,
    checkpoint_id: str,
    hours_ago,
    building_id: str = "bldg-1",
    is_active: bool = True,
    status: str = CheckpointStatus.CLEAN,
) -> None:
    """`hours_ago=None` seeds a never-cleaned checkpoint (epoch timestamp)."""
    last = EPOCH if hours_ago is None else NOW - timedelta(hours=hours_ago)
    store.add(Collections.CHECKPOINTS, checkpoint_id, {
        "building_id": building_id,
        "is_active": is_active,
        "last_cleaned_timestamp": last,
        "last_cleaned_at": last.isoformat(),
        "current_status": status,
    })


def seed_open_alert(store: InMemoryDocumentStore, checkpoint_id: str, building_id: str = "bldg-1") -> None:
    store.add(Collections.ALERTS, f"existing-{checkpoint_id}", {
        "building_id": building_id,
        "checkpoint_id": checkpoint_id,
        "type": "SLA_MISSING_CLEAN",
        "severity": "MEDIUM",
        "status": "OPEN",
        "message": "Area has not been cleaned in over 4 hours.",
        "details": {"hours_overdue": 5.0, "sla_threshold_hours": 4},
        "last_cleaned_at": (NOW - timedelta(hours=5)).isoformat(),
        "created_at": NOW - timedelta(hours=1),
    })


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def make_watchdog():
    def _make(store, config=None, **kwargs):
        provider = StaticSLAConfig(config or SLAConfig(default_max_gap_hours=4))
        return ComplianceWatchdog(store, provider, clock=lambda: NOW, **kwargs)

    return _make

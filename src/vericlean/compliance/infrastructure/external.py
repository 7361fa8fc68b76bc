"""
Compliance External Service Integrations
========================================

External services for the compliance watchdog:
- YAML SLA policy file with hot-reload (watchdog observers)
- APScheduler for the fixed-cadence watchdog invocation
- Job wrapper reporting run outcomes to Grafana
"""

import threading
from pathlib import Path
from typing import Awaitable, Callable, Optional

import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from vericlean.compliance.application import (
    ComplianceWatchdog, ISLAConfigProvider, WatchdogRunSummary
)
from vericlean.compliance.domain import SLAConfig
from vericlean.config import WatchdogOutcome, settings
from vericlean.core import ConfigurationException, WatchdogStageError
from vericlean.shared.infrastructure.grafana import GrafanaOTLPExporter
from vericlean.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA config file changes."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        """Handle file modification event."""
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info(f"SLA config file changed: {event.src_path}")
            self.config_manager.reload()


class SLAConfigManager(ISLAConfigProvider):
    """
    Thread-safe SLA policy manager with hot-reload support.

    Uses watchdog to monitor file changes and reload configuration
    without restarting the service. A broken edit keeps the previous
    configuration in place.
    """

    def __init__(self, default_max_gap_hours: Optional[float] = None):
        self._default_max_gap_hours = default_max_gap_hours or settings.default_max_gap_hours
        self._config: Optional[SLAConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAConfig:
        """Initial configuration load. Invalid files fail loudly."""
        self._path = path
        try:
            config = self._load_from_file(path)
        except (OSError, yaml.YAMLError, ValidationError) as e:
            raise ConfigurationException(
                f"Invalid SLA config file: {path}", {"error": str(e)}
            ) from e
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> SLAConfig:
        """Load and parse YAML config file."""
        if not path.exists():
            logger.warning(
                f"SLA config file not found: {path}, using defaults",
                extra={"default_max_gap_hours": self._default_max_gap_hours}
            )
            return SLAConfig(default_max_gap_hours=self._default_max_gap_hours)

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        data.setdefault("default_max_gap_hours", self._default_max_gap_hours)
        return SLAConfig(**data)

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except (OSError, yaml.YAMLError, ValidationError) as e:
            logger.error(f"Failed to reload SLA config: {e}")
            return False

        with self._lock:
            self._config = new_config
        logger.info(
            "SLA configuration reloaded successfully",
            extra={
                "default_max_gap_hours": new_config.default_max_gap_hours,
                "building_overrides": len(new_config.building_overrides)
            }
        )
        return True

    def start_watching(self) -> None:
        """
        Start watching the configuration file for changes.

        Skips watching when the file doesn't exist or when inotify is
        unavailable (common in containers).
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                f"Config file doesn't exist, skipping file watch: {self._path}. "
                "Using default SLA configuration."
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info(f"Started watching config file: {self._path}")
        except OSError as e:
            logger.warning(f"File watching not available, using static config: {e}")
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching configuration file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def get_config(self) -> SLAConfig:
        with self._lock:
            if self._config is None:
                raise RuntimeError("SLA configuration not loaded")
            return self._config

    @property
    def config(self) -> SLAConfig:
        """Get current configuration."""
        return self.get_config()


class WatchdogJob:
    """
    Scheduler entry point for one watchdog invocation.

    Takes no arguments, reports the outcome to Grafana and re-raises
    failures so the scheduler records the run as failed.
    """

    def __init__(
        self,
        watchdog: ComplianceWatchdog,
        exporter: Optional[GrafanaOTLPExporter] = None
    ):
        self._watchdog = watchdog
        self._exporter = exporter
        self.last_summary: Optional[WatchdogRunSummary] = None

    async def __call__(self) -> WatchdogRunSummary:
        try:
            summary = await self._watchdog.run()
        except WatchdogStageError as e:
            await self._export(
                WatchdogOutcome.FAILED,
                failed=True,
                overdue_count=e.counts.get("overdue_count", 0),
                alerts_created=e.counts.get("alerts_created", 0),
                statuses_updated=e.counts.get("statuses_updated", 0),
                attributes={"stage": e.stage},
            )
            raise

        self.last_summary = summary
        await self._export(
            summary.outcome,
            overdue_count=summary.overdue_count,
            alerts_created=summary.alerts_created,
            statuses_updated=summary.statuses_updated,
            latency_ms=summary.duration_ms,
        )
        return summary

    async def _export(self, outcome: str, **kwargs) -> None:
        if self._exporter is None or not self._exporter.is_enabled():
            return
        await self._exporter.export_watchdog_metrics(outcome, **kwargs)


class WatchdogScheduler:
    """
    Wrapper for APScheduler running the watchdog on a fixed cadence.

    `max_instances=1` keeps invocations single-flight: a slow run makes the
    next tick skip rather than overlap.
    """

    JOB_ID = "compliance_watchdog"

    def __init__(self, interval_minutes: int = 15):
        self.interval_minutes = interval_minutes
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[object]]) -> None:
        """Start the scheduler with the given job function."""
        if self._running:
            logger.warning("Watchdog scheduler already running")
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            job_func,
            "interval",
            minutes=self.interval_minutes,
            id=self.JOB_ID,
            name="Compliance Watchdog",
            misfire_grace_time=60,
            coalesce=True,
            max_instances=1,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info(
            "Watchdog scheduler started",
            extra={"interval_minutes": self.interval_minutes}
        )

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=True)

        self._running = False
        logger.info("Watchdog scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running

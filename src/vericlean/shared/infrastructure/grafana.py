"""
Grafana OTLP Metrics Exporter
==============================

Pushes compliance watchdog run metrics to Grafana Cloud via OTLP.

Metrics exported:
- watchdog_overdue_checkpoints: Checkpoints found past their SLA cutoff
- watchdog_alerts_created: New SLA_MISSING_CLEAN alerts committed
- watchdog_status_updates: Checkpoints transitioned to OVERDUE
- watchdog_run_failures: 1 when the run failed, 0 otherwise
- watchdog_run_latency_ms: Wall-clock duration of the run
"""

import base64
import time
from typing import Optional, Dict, Any, List

import httpx

from vericlean.config import settings
from vericlean.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class GrafanaOTLPExporter:
    """
    Export watchdog metrics to Grafana Cloud via OTLP HTTP endpoint.

    Uses OpenTelemetry Protocol (OTLP) format for metrics. Export is
    best-effort: failures are logged and reported as False, never raised.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_id: Optional[str] = None,
        timeout_seconds: float = 10.0
    ):
        """
        Initialize Grafana OTLP exporter.

        Args:
            host: Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-ap-south-1.grafana.net)
            api_key: Grafana API key
            instance_id: Instance ID for authentication
            timeout_seconds: HTTP timeout for a single export
        """
        self._host = host or settings.grafana_host
        self._api_key = api_key or settings.grafana_api_key
        self._instance_id = instance_id or settings.grafana_instance_id
        self._timeout = timeout_seconds
        self._enabled = bool(self._host and self._api_key and self._instance_id)

        if self._enabled:
            auth_pair = f"{self._instance_id}:{self._api_key}"
            self._auth_encoded = base64.b64encode(auth_pair.encode()).decode()
            # Don't double-append the path if host already includes it
            if "/otlp/v1/metrics" not in self._host:
                self._url = f"{self._host}/otlp/v1/metrics"
            else:
                self._url = self._host
            logger.info(
                "Grafana OTLP exporter initialized",
                extra={"host": self._host, "instance_id": self._instance_id}
            )
        else:
            logger.info(
                "Grafana OTLP exporter not configured - metrics will not be exported",
                extra={
                    "host_configured": bool(self._host),
                    "api_key_configured": bool(self._api_key),
                    "instance_id_configured": bool(self._instance_id)
                }
            )

    def is_enabled(self) -> bool:
        """Check if exporter is properly configured."""
        return self._enabled

    @staticmethod
    def _gauge(
        name: str,
        value: int,
        unit: str,
        description: str,
        timestamp_ns: int,
        attributes: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        return {
            "name": name,
            "unit": unit,
            "description": description,
            "gauge": {
                "dataPoints": [
                    {
                        "asInt": value,
                        "timeUnixNano": timestamp_ns,
                        "attributes": attributes
                    }
                ]
            }
        }

    def build_watchdog_payload(
        self,
        outcome: str,
        overdue_count: int,
        alerts_created: int,
        statuses_updated: int,
        latency_ms: int,
        failed: bool,
        attributes: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """Build the OTLP metrics payload for one watchdog run."""
        timestamp_ns = int(time.time() * 1_000_000_000)

        metric_attributes = [
            {"key": "outcome", "value": {"stringValue": outcome}},
            {"key": "service", "value": {"stringValue": settings.app_name}},
        ]
        for key, value in (attributes or {}).items():
            metric_attributes.append({"key": key, "value": {"stringValue": str(value)}})

        metrics = [
            self._gauge("watchdog_overdue_checkpoints", overdue_count, "1",
                        "Checkpoints past their SLA cutoff", timestamp_ns, metric_attributes),
            self._gauge("watchdog_alerts_created", alerts_created, "1",
                        "New missing-clean alerts committed", timestamp_ns, metric_attributes),
            self._gauge("watchdog_status_updates", statuses_updated, "1",
                        "Checkpoints transitioned to OVERDUE", timestamp_ns, metric_attributes),
            self._gauge("watchdog_run_failures", 1 if failed else 0, "1",
                        "Failed watchdog invocations", timestamp_ns, metric_attributes),
            self._gauge("watchdog_run_latency_ms", latency_ms, "ms",
                        "Watchdog run latency in milliseconds", timestamp_ns, metric_attributes),
        ]

        return {
            "resourceMetrics": [
                {
                    "resource": {
                        "attributes": [
                            {"key": "service.name", "value": {"stringValue": settings.app_name}},
                            {"key": "service.version", "value": {"stringValue": settings.app_version}},
                            {"key": "deployment.environment", "value": {"stringValue": settings.environment}},
                        ]
                    },
                    "scopeMetrics": [{"metrics": metrics}]
                }
            ]
        }

    async def export_watchdog_metrics(
        self,
        outcome: str,
        overdue_count: int = 0,
        alerts_created: int = 0,
        statuses_updated: int = 0,
        latency_ms: int = 0,
        failed: bool = False,
        attributes: Optional[Dict[str, str]] = None
    ) -> bool:
        """
        Export one watchdog run's outcome to Grafana.

        Returns:
            True if export succeeded, False otherwise
        """
        if not self._enabled:
            logger.debug("Grafana exporter not enabled - skipping metrics export")
            return False

        payload = self.build_watchdog_payload(
            outcome, overdue_count, alerts_created, statuses_updated,
            latency_ms, failed, attributes
        )
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._auth_encoded}",
            "X-Grafana-Org-Id": str(self._instance_id)
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, headers=headers, json=payload)

            if response.status_code in (200, 202):
                logger.debug(
                    "Watchdog metrics exported to Grafana",
                    extra={"outcome": outcome, "status_code": response.status_code}
                )
                return True

            logger.warning(
                "Failed to export metrics to Grafana",
                extra={
                    "status_code": response.status_code,
                    "response": response.text[:500],
                    "url": self._url
                }
            )
            return False

        except httpx.HTTPError as e:
            logger.error(
                "Error exporting metrics to Grafana",
                extra={"error": str(e)}
            )
            return False


# Global exporter instance
_grafana_exporter: Optional[GrafanaOTLPExporter] = None


def get_grafana_exporter() -> GrafanaOTLPExporter:
    """Get or create global Grafana exporter instance."""
    global _grafana_exporter
    if _grafana_exporter is None:
        _grafana_exporter = GrafanaOTLPExporter()
    return _grafana_exporter

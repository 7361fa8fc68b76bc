"""
Data Privacy Policy
===================

What each consumer may see of our records.

Allow-lists are dotted paths into the stored document. Anything not on
the list for an entity type is dropped before the record leaves the
service (AI analysis, ticketing, external logs).
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Pattern, Tuple


class EntityType(str):
    """Record kinds the privacy filter understands."""
    CLEANING_LOG = "cleaning_log"
    CHECKPOINT = "checkpoint"
    BUILDING = "building"
    ALERT = "alert"


# ========== Allow-lists ==========

AI_SAFE_FIELDS: Dict[str, List[str]] = {
    EntityType.CLEANING_LOG: [
        "id",
        "checkpoint_id",
        "building_id",
        "sync_status",
        "created_at",
        "proof_of_quality.overall_score",
        "proof_of_quality.detected_objects",
        "proof_of_quality.ai_model_used",
        "proof_of_quality.inference_time_ms",
        "proof_of_quality.passed_validation",
        "verification_result.status",
        "verification_result.rejection_reason",
    ],
    EntityType.CHECKPOINT: [
        "id",
        "building_id",
        "location_label",
        "floor_number",
        "x_rel",
        "y_rel",
        "ai_config.model_version",
        "ai_config.target_labels",
        "current_status",
    ],
    EntityType.BUILDING: [
        "id",
        "name",
        "client_sla_config.required_cleanings_per_day",
        "client_sla_config.cleaning_window_start",
        "client_sla_config.cleaning_window_end",
    ],
    EntityType.ALERT: [
        "id",
        "building_id",
        "checkpoint_id",
        "severity",
        "status",
        "type",
        "message",
        "details.score",
        "details.detected_hazards",
        "details.hours_overdue",
        "details.sla_threshold_hours",
        "created_at",
    ],
}

# Never passed to AI, whatever the allow-lists say
PII_FIELDS: Dict[str, List[str]] = {
    "user": [
        "uid",
        "email",
        "full_name",
        "assigned_building_ids",
    ],
    EntityType.CLEANING_LOG: [
        "cleaner_id",
        "proof_of_presence.geo_location",
        "proof_of_presence.nfc_tap_timestamp",
    ],
    EntityType.BUILDING: [
        "address.street",
        "address.city",
        "address.state",
        "address.zip",
    ],
}


# ========== Text Redaction ==========

REDACTION_PATTERNS: List[Tuple[Pattern[str], str]] = [
    (re.compile(r"\bcleaner[_-]?id[:\s]+[a-f0-9-]{36}\b", re.IGNORECASE), "cleaner_id: [REDACTED]"),
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL_REDACTED]"),
    (re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), "[SSN_REDACTED]"),
    (re.compile(r"(?:\+\d{1,3}[-.\s]?)?(?:\(\d{3}\)|\b\d{3})[-.\s]?\d{3}[-.\s]?\d{4}\b"), "[PHONE_REDACTED]"),
    (re.compile(r"\b(?:EMP|WORKER|USER)-[A-Z0-9]+\b", re.IGNORECASE), "[WORKER_ID_REDACTED]"),
]


# ========== Privacy Contexts ==========

@dataclass(frozen=True)
class PrivacyContext:
    """Which PII classes a consumer may receive on top of the allow-list."""
    allow_geolocation: bool
    allow_worker_ids: bool
    allow_building_address: bool
    allow_timestamps: bool


PRIVACY_CONTEXTS: Dict[str, PrivacyContext] = {
    "ai_analysis": PrivacyContext(
        allow_geolocation=False,
        allow_worker_ids=False,
        allow_building_address=False,
        allow_timestamps=True,
    ),
    # On-site support needs the address, never GPS
    "ticketing": PrivacyContext(
        allow_geolocation=False,
        allow_worker_ids=False,
        allow_building_address=True,
        allow_timestamps=True,
    ),
    "internal_logging": PrivacyContext(
        allow_geolocation=True,
        allow_worker_ids=True,
        allow_building_address=True,
        allow_timestamps=True,
    ),
}

DEFAULT_PRIVACY_CONTEXT = "ai_analysis"

# Paths re-admitted by each context permission
GEOLOCATION_PATHS = ["proof_of_presence.geo_location"]
WORKER_ID_PATHS = ["cleaner_id", "proof_of_presence.nfc_tap_timestamp"]
BUILDING_ADDRESS_PATHS = ["address"]
TIMESTAMP_PATHS = ["created_at"]

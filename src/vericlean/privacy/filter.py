"""
PII Filter
==========

Sanitizes records before they reach AI analysis, ticketing or logs.

Records are plain dicts in stored-document shape. Every function returns
a new dict; the input is never mutated.
"""

import copy
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from vericlean.core import ValidationException
from vericlean.privacy.policy import (
    AI_SAFE_FIELDS,
    BUILDING_ADDRESS_PATHS,
    DEFAULT_PRIVACY_CONTEXT,
    GEOLOCATION_PATHS,
    PII_FIELDS,
    PRIVACY_CONTEXTS,
    REDACTION_PATTERNS,
    TIMESTAMP_PATHS,
    WORKER_ID_PATHS,
    EntityType,
    PrivacyContext,
)

Record = Dict[str, Any]


# ========== Path Helpers ==========

def pick_paths(record: Record, paths: Iterable[str]) -> Record:
    """
    Copy only the given dotted paths into a new dict.

    Missing paths are skipped; parents are created only for present leaves.
    """
    result: Record = {}

    for path in paths:
        parts = path.split(".")
        source: Any = record
        for key in parts[:-1]:
            source = source.get(key) if isinstance(source, dict) else None
            if source is None:
                break
        if not isinstance(source, dict) or parts[-1] not in source:
            continue

        target = result
        for key in parts[:-1]:
            target = target.setdefault(key, {})
        target[parts[-1]] = copy.deepcopy(source[parts[-1]])

    return result


def omit_paths(record: Record, paths: Iterable[str]) -> Record:
    """Deep copy of `record` without the given dotted paths."""
    result = copy.deepcopy(record)

    for path in paths:
        parts = path.split(".")
        current: Any = result
        for key in parts[:-1]:
            current = current.get(key) if isinstance(current, dict) else None
            if current is None:
                break
        if isinstance(current, dict):
            current.pop(parts[-1], None)

    return result


def _all_paths(record: Record, prefix: str = "") -> List[str]:
    paths = []
    for key, value in record.items():
        full_path = f"{prefix}.{key}" if prefix else key
        paths.append(full_path)
        if isinstance(value, dict):
            paths.extend(_all_paths(value, full_path))
    return paths


# ========== Text Redaction ==========

def redact_text(text: str) -> str:
    """Replace emails, phone numbers, SSNs and worker identifiers."""
    for pattern, replacement in REDACTION_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def _redact_strings(mapping: Optional[Dict[str, Any]]) -> None:
    if not isinstance(mapping, dict):
        return
    for key, value in mapping.items():
        if isinstance(value, str):
            mapping[key] = redact_text(value)


# ========== Entity Sanitizers ==========

def sanitize_log(log: Record) -> Record:
    """Cleaning log without worker ids, geolocation or tap times."""
    sanitized = pick_paths(log, AI_SAFE_FIELDS[EntityType.CLEANING_LOG])
    result = sanitized.get("verification_result")
    if isinstance(result, dict) and isinstance(result.get("rejection_reason"), str):
        result["rejection_reason"] = redact_text(result["rejection_reason"])
    return sanitized


def sanitize_checkpoint(checkpoint: Record) -> Record:
    return pick_paths(checkpoint, AI_SAFE_FIELDS[EntityType.CHECKPOINT])


def sanitize_building(building: Record) -> Record:
    """Building without its street address."""
    return pick_paths(building, AI_SAFE_FIELDS[EntityType.BUILDING])


def sanitize_alert(alert: Record) -> Record:
    """Alert with free-text detail values redacted."""
    sanitized = pick_paths(alert, AI_SAFE_FIELDS[EntityType.ALERT])
    if isinstance(sanitized.get("message"), str):
        sanitized["message"] = redact_text(sanitized["message"])
    _redact_strings(sanitized.get("details"))
    return sanitized


_SANITIZERS = {
    EntityType.CLEANING_LOG: sanitize_log,
    EntityType.CHECKPOINT: sanitize_checkpoint,
    EntityType.BUILDING: sanitize_building,
    EntityType.ALERT: sanitize_alert,
}


def get_privacy_context(name: str) -> PrivacyContext:
    try:
        return PRIVACY_CONTEXTS[name]
    except KeyError:
        raise ValidationException(
            f"Unknown privacy context: {name}",
            {"valid_contexts": sorted(PRIVACY_CONTEXTS)}
        ) from None


def sanitize(record: Record, entity_type: str, context: str = DEFAULT_PRIVACY_CONTEXT) -> Record:
    """
    Sanitize a record for a named consumer.

    The entity allow-list always applies; the context then re-admits the
    PII classes it is permitted to see.
    """
    sanitizer = _SANITIZERS.get(entity_type)
    if sanitizer is None:
        raise ValidationException(
            f"Unknown entity type: {entity_type}",
            {"valid_entity_types": sorted(_SANITIZERS)}
        )
    permissions = get_privacy_context(context)

    sanitized = sanitizer(record)

    readmitted: List[str] = []
    if permissions.allow_timestamps:
        readmitted += TIMESTAMP_PATHS
    if permissions.allow_geolocation:
        readmitted += GEOLOCATION_PATHS
    if permissions.allow_worker_ids:
        readmitted += WORKER_ID_PATHS
    if permissions.allow_building_address and entity_type == EntityType.BUILDING:
        readmitted += BUILDING_ADDRESS_PATHS

    _merge(sanitized, pick_paths(record, readmitted))
    return sanitized


def _merge(target: Record, extra: Record) -> None:
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = value


# ========== Batch Variants ==========

def sanitize_logs(logs: Iterable[Record]) -> List[Record]:
    return [sanitize_log(log) for log in logs]


def sanitize_checkpoints(checkpoints: Iterable[Record]) -> List[Record]:
    return [sanitize_checkpoint(checkpoint) for checkpoint in checkpoints]


def sanitize_alerts(alerts: Iterable[Record]) -> List[Record]:
    return [sanitize_alert(alert) for alert in alerts]


def sanitize_many(
    records: Iterable[Record],
    entity_type: str,
    context: str = DEFAULT_PRIVACY_CONTEXT
) -> List[Record]:
    return [sanitize(record, entity_type, context) for record in records]


# ========== Audit ==========

def generate_privacy_audit_log(original: Record, sanitized: Record, context: str) -> Dict[str, Any]:
    """
    Audit entry listing every path filtered out of `original`.

    Returns:
        timestamp, context, fields_removed, pii_fields_removed and
        pii_protected
    """
    kept = set(_all_paths(sanitized))
    fields_removed = [path for path in _all_paths(original) if path not in kept]
    catalogued = {path for paths in PII_FIELDS.values() for path in paths}

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "context": context,
        "fields_removed": fields_removed,
        "pii_fields_removed": [path for path in fields_removed if path in catalogued],
        "pii_protected": bool(fields_removed),
    }

"""
Privacy Module
==============

Field allow-lists and text redaction applied before records leave the
service.
"""

from vericlean.privacy.policy import (
    AI_SAFE_FIELDS,
    PII_FIELDS,
    PRIVACY_CONTEXTS,
    REDACTION_PATTERNS,
    EntityType,
    PrivacyContext,
)
from vericlean.privacy.filter import (
    generate_privacy_audit_log,
    get_privacy_context,
    omit_paths,
    pick_paths,
    redact_text,
    sanitize,
    sanitize_alert,
    sanitize_alerts,
    sanitize_building,
    sanitize_checkpoint,
    sanitize_checkpoints,
    sanitize_log,
    sanitize_logs,
    sanitize_many,
)

__all__ = [
    "AI_SAFE_FIELDS",
    "PII_FIELDS",
    "PRIVACY_CONTEXTS",
    "REDACTION_PATTERNS",
    "EntityType",
    "PrivacyContext",
    "generate_privacy_audit_log",
    "get_privacy_context",
    "omit_paths",
    "pick_paths",
    "redact_text",
    "sanitize",
    "sanitize_alert",
    "sanitize_alerts",
    "sanitize_building",
    "sanitize_checkpoint",
    "sanitize_checkpoints",
    "sanitize_log",
    "sanitize_logs",
    "sanitize_many",
]

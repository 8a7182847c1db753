"""
Audit records for the signal fusion -> consensus -> decision pipeline.
"""

from src.events.audit import (
    ALL_STAGES,
    STAGE_CONSENSUS,
    STAGE_RECOMMENDATION,
    STAGE_SIGNAL_FUSION,
    STAGE_SIGNAL_INTAKE,
    AuditEntry,
    AuditTrail,
)

__all__ = [
    "ALL_STAGES",
    "STAGE_CONSENSUS",
    "STAGE_RECOMMENDATION",
    "STAGE_SIGNAL_FUSION",
    "STAGE_SIGNAL_INTAKE",
    "AuditEntry",
    "AuditTrail",
]

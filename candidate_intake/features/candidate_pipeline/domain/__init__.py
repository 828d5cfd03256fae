"""
Domain subpackage for the candidate pipeline.
"""

from .models import (
    AdmissionDecision,
    AttachmentRef,
    AuditAction,
    AuditEntry,
    AuditStage,
    CandidateDraft,
    GateResult,
    MessageStatus,
    QualificationType,
    RunResult,
    RunStats,
    RunStatus,
    TenantRoute,
    TriggerSource,
)

__all__ = [
    "AdmissionDecision",
    "AttachmentRef",
    "AuditAction",
    "AuditEntry",
    "AuditStage",
    "CandidateDraft",
    "GateResult",
    "MessageStatus",
    "QualificationType",
    "RunResult",
    "RunStats",
    "RunStatus",
    "TenantRoute",
    "TriggerSource",
]

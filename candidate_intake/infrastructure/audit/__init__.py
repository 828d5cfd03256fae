"""
Audit trail infrastructure for pipeline decisions.
"""

from candidate_intake.infrastructure.audit.pipeline_audit import AuditRecorder, audit_recorder

__all__ = ["AuditRecorder", "audit_recorder"]

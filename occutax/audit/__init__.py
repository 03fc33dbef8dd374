"""Trigger-based audit trail: trigger DDL, actor context and log queries."""

from occutax.audit.context import audited_session, with_audit_context
from occutax.audit.triggers import install_audit_triggers

__all__ = ["audited_session", "install_audit_triggers", "with_audit_context"]

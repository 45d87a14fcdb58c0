"""Audit logging package."""

from fincache.audit.logger import ResourceAuditLogger

__all__ = ["ResourceAuditLogger"]

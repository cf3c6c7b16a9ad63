"""
Audit logging for report templates, invoices and exports.

Logs every mutation of shared resources and every denied access attempt
for compliance and investigation purposes. Entries are single-line JSON
on the "audit" logger (can be shipped to centralized logging).

Never log SQL text, filter values or invoice line descriptions here.
"""
import logging
import json
from datetime import datetime, timezone
from typing import Any, Optional, Dict

audit_logger = logging.getLogger("audit")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AuditLog:
    """Central audit logging for business-critical events."""

    @staticmethod
    def log_action(
        action: str,  # "create", "update", "delete", "execute"
        resource_type: str,  # "report_template", "invoice"
        resource_id: str,
        user_id: str,
        changes: Optional[Dict[str, Any]] = None,
    ):
        """
        Log business-critical actions: who changed what, and when.

        Usage:
            AuditLog.log_action("update", "report_template", template.id, user_id,
                                changes={"fields": ["name", "is_public"]})
        """
        log_entry = {
            "timestamp": _now(),
            "event_type": f"{resource_type}.{action}",
            "user_id": user_id,
            "resource_id": resource_id,
        }

        if changes:
            log_entry["changes"] = changes

        audit_logger.info(json.dumps(log_entry, default=str))

    @staticmethod
    def log_access_denied(
        action: str,  # "read", "update", "delete"
        resource_type: str,
        resource_id: str,
        user_id: str,
        reason: str,
    ):
        """
        Log denied access attempts (potential IDOR probing).

        Usage:
            AuditLog.log_access_denied("delete", "report_template", tid, uid, "Not template owner")
        """
        log_entry = {
            "timestamp": _now(),
            "event_severity": "WARNING",
            "event_type": "access_denied",
            "action": action,
            "resource_type": resource_type,
            "resource_id": resource_id,
            "user_id": user_id,
            "reason": reason,
        }

        audit_logger.warning(json.dumps(log_entry))

    @staticmethod
    def log_report_export(user_id: str, data_source: str, export_format: str, row_count: int):
        """Exports leave the system as files, so each one is recorded."""
        log_entry = {
            "timestamp": _now(),
            "event_type": "report.exported",
            "user_id": user_id,
            "data_source": data_source,
            "format": export_format,
            "row_count": row_count,
        }

        audit_logger.info(json.dumps(log_entry))

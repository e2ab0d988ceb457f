"""
Audit Models for Partner Ledger

Every significant action in the system is logged for audit purposes.
This provides:
1. Traceability of every ledger mutation
2. Debugging information when sync goes wrong
3. Ability to reconstruct who changed what and when

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Workspace access
    WORKSPACE_CREATED = "workspace_created"
    WORKSPACE_LOGIN = "workspace_login"
    WORKSPACE_LOGIN_FAILED = "workspace_login_failed"
    WORKSPACE_LOGOUT = "workspace_logout"

    # Projects
    PROJECT_CREATED = "project_created"
    PROJECT_RENAMED = "project_renamed"
    PROJECT_DELETED = "project_deleted"
    PROJECT_CLEARED = "project_cleared"
    PROJECT_SELECTED = "project_selected"
    PROJECT_SETTLED_FLAG_CHANGED = "project_settled_flag_changed"

    # Transactions
    TRANSACTION_RECORDED = "transaction_recorded"
    TRANSACTION_EDITED = "transaction_edited"
    TRANSACTION_DELETED = "transaction_deleted"
    TRANSACTION_REJECTED = "transaction_rejected"

    # Settings
    PARTNERS_RENAMED = "partners_renamed"

    # Synchronization
    WORKSPACE_LOADED = "workspace_loaded"
    SAVE_FAILED = "save_failed"

    # System events
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - which workspace and entity is this about?
    workspace_id: Optional[str] = Field(
        default=None,
        description="Workspace the event belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'project', 'transaction')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one client session)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "workspace_id": self.workspace_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, workspace_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.workspace_id or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.project_event(
            AuditEventType.PROJECT_CREATED, workspace_id, project_id, "Project created"
        )
        event = AuditEventBuilder.save_failed(workspace_id, error_message)
    """

    @staticmethod
    def workspace_created(workspace_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WORKSPACE_CREATED,
            workspace_id=workspace_id,
            entity_type="workspace",
            entity_id=workspace_id,
            description="Workspace created",
            is_user_action=True,
        )

    @staticmethod
    def login_succeeded(workspace_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WORKSPACE_LOGIN,
            workspace_id=workspace_id,
            entity_type="workspace",
            entity_id=workspace_id,
            description="Logged in to workspace",
            is_user_action=True,
        )

    @staticmethod
    def logout(workspace_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WORKSPACE_LOGOUT,
            workspace_id=workspace_id,
            entity_type="workspace",
            entity_id=workspace_id,
            description="Logged out of workspace",
            is_user_action=True,
        )

    @staticmethod
    def login_failed(workspace_id: str, reason: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.WORKSPACE_LOGIN_FAILED,
            severity=AuditSeverity.WARNING,
            workspace_id=workspace_id,
            entity_type="workspace",
            entity_id=workspace_id,
            description=f"Login failed: {reason}",
            details={"reason": reason},
            is_user_action=True,
        )

    @staticmethod
    def project_event(
        event_type: AuditEventType,
        workspace_id: Optional[str],
        project_id: int,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            workspace_id=workspace_id,
            entity_type="project",
            entity_id=str(project_id),
            correlation_id=correlation_id,
            description=description,
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def transaction_event(
        event_type: AuditEventType,
        workspace_id: Optional[str],
        project_id: int,
        transaction_id: int,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            workspace_id=workspace_id,
            entity_type="transaction",
            entity_id=str(transaction_id),
            correlation_id=correlation_id,
            description=description,
            details={"project_id": project_id, **(details or {})},
            is_user_action=True,
        )

    @staticmethod
    def transaction_rejected(
        workspace_id: Optional[str],
        project_id: int,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_REJECTED,
            severity=AuditSeverity.WARNING,
            workspace_id=workspace_id,
            entity_type="project",
            entity_id=str(project_id),
            correlation_id=correlation_id,
            description=f"Transaction rejected with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def partners_renamed(
        workspace_id: Optional[str],
        old_names: tuple[str, str],
        new_names: tuple[str, str],
        rewritten: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTNERS_RENAMED,
            workspace_id=workspace_id,
            entity_type="settings",
            correlation_id=correlation_id,
            description=f"Partners renamed to {new_names[0]} / {new_names[1]}",
            details={
                "old_names": list(old_names),
                "new_names": list(new_names),
                "fields_rewritten": rewritten,
            },
            is_user_action=True,
        )

    @staticmethod
    def sync_event(
        event_type: AuditEventType,
        workspace_id: Optional[str],
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            workspace_id=workspace_id,
            entity_type="workspace",
            entity_id=workspace_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def save_failed(
        workspace_id: Optional[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            workspace_id=workspace_id,
            entity_type="workspace",
            entity_id=workspace_id,
            correlation_id=correlation_id,
            description="Failed to save workspace",
            error_message=error_message,
        )

    def external_service_error(
        service: str,
        error_message: str,
        workspace_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            workspace_id=workspace_id,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )

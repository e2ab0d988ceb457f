"""
Data Models Package

This package contains all Pydantic models used in Partner Ledger.
All data flowing through the system must conform to these schemas.
"""

from partner_ledger.models.ledger import (
    DEFAULT_PARTNER_A_NAME,
    DEFAULT_PARTNER_B_NAME,
    PartnerSettings,
    Project,
    Transaction,
    TransactionDraft,
    TransactionType,
    WorkspaceState,
)
from partner_ledger.models.reports import (
    Balances,
    NetFlow,
    PartnerBalance,
    ProjectReport,
    ProjectTotals,
    SettlementRecommendation,
)
from partner_ledger.models.validation import (
    ValidationIssue,
    ValidationResult,
)
from partner_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "DEFAULT_PARTNER_A_NAME",
    "DEFAULT_PARTNER_B_NAME",
    "PartnerSettings",
    "Project",
    "Transaction",
    "TransactionDraft",
    "TransactionType",
    "WorkspaceState",
    # Derived reports
    "Balances",
    "NetFlow",
    "PartnerBalance",
    "ProjectReport",
    "ProjectTotals",
    "SettlementRecommendation",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]

"""
Ledger Package

The reconciliation engine: id assignment, the transaction store,
the project registry and the pure balance engine.
"""

from partner_ledger.ledger.balance import (
    DEFAULT_SETTLEMENT_TOLERANCE,
    balances,
    net_flow,
    project_report,
    project_totals,
    settlement_draft,
    settlement_needed,
    transaction_totals,
)
from partner_ledger.ledger.ids import IdGenerator
from partner_ledger.ledger.projects import ProjectRegistry
from partner_ledger.ledger.transactions import (
    TransactionStore,
    filter_transactions,
    rewrite_partner_names,
)

__all__ = [
    # Balance engine
    "DEFAULT_SETTLEMENT_TOLERANCE",
    "balances",
    "net_flow",
    "project_report",
    "project_totals",
    "settlement_draft",
    "settlement_needed",
    "transaction_totals",
    # Stores
    "IdGenerator",
    "ProjectRegistry",
    "TransactionStore",
    "filter_transactions",
    "rewrite_partner_names",
]

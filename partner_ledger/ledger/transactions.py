"""
Transaction Store

Records, edits and deletes ledger entries inside one project.

Entries are appended in insertion order. An edit replaces the entry at the
same position and keeps its id; the old entry object is never mutated.
Edit and delete return None when the id is unknown and leave the project
untouched; it is up to the caller to report that.
"""

from typing import Optional

from partner_ledger.ledger.ids import IdGenerator
from partner_ledger.models.ledger import (
    PartnerSettings,
    Project,
    Transaction,
    TransactionDraft,
    TransactionType,
)
from partner_ledger.validation import TransactionValidator


class TransactionStore:
    """
    Validated mutations on a project's transaction list.

    Every new entry gets its id from the shared IdGenerator so ids stay
    unique across all projects of a workspace.
    """

    def __init__(
        self,
        validator: Optional[TransactionValidator] = None,
        id_generator: Optional[IdGenerator] = None,
    ):
        self._validator = validator or TransactionValidator()
        self._ids = id_generator or IdGenerator()

    @property
    def validator(self) -> TransactionValidator:
        return self._validator

    def record(
        self,
        project: Project,
        draft: TransactionDraft,
        partners: PartnerSettings,
    ) -> Transaction:
        """
        Validate a draft and append it to the project.

        Raises:
            ValidationError: If the draft is invalid. Nothing is appended
                and no id is consumed.
        """
        transaction = self._validator.build_transaction(draft, partners, transaction_id=0)
        transaction = transaction.model_copy(update={"id": self._ids.next_id()})
        project.transactions.append(transaction)
        return transaction

    def edit(
        self,
        project: Project,
        transaction_id: int,
        draft: TransactionDraft,
        partners: PartnerSettings,
    ) -> Optional[Transaction]:
        """
        Replace a transaction in place, keeping its id and position.

        Returns:
            The new transaction, or None if the id is not in the project

        Raises:
            ValidationError: If the draft is invalid (project unchanged)
        """
        index = project.index_of(transaction_id)
        if index is None:
            return None

        transaction = self._validator.build_transaction(
            draft,
            partners,
            transaction_id=transaction_id,
        )
        project.transactions[index] = transaction
        return transaction

    def delete(self, project: Project, transaction_id: int) -> Optional[Transaction]:
        """Remove a transaction by id. Returns the removed entry, or None if absent."""
        index = project.index_of(transaction_id)
        if index is None:
            return None
        return project.transactions.pop(index)

    def clear(self, project: Project) -> int:
        """Remove every transaction of a project. Returns how many were removed."""
        removed = len(project.transactions)
        project.transactions = []
        return removed


def filter_transactions(
    transactions: list[Transaction],
    transaction_type: Optional[TransactionType] = None,
) -> list[Transaction]:
    """
    List transactions newest date first, optionally of a single type.

    Entries on the same date keep their insertion order.
    """
    selected = [
        t for t in transactions
        if transaction_type is None or t.type == transaction_type
    ]
    return sorted(selected, key=lambda t: t.transaction_date, reverse=True)


def rewrite_partner_names(
    projects: list[Project],
    renames: dict[str, str],
) -> int:
    """
    Rewrite paid_by / received_by fields across every project.

    All renames are applied simultaneously, so swapping two names
    ({"A": "B", "B": "A"}) works. Returns the number of fields rewritten.
    """
    renames = {old: new for old, new in renames.items() if old != new}
    if not renames:
        return 0

    rewritten = 0
    for project in projects:
        for index, transaction in enumerate(project.transactions):
            update = {}
            if transaction.paid_by in renames:
                update["paid_by"] = renames[transaction.paid_by]
            if transaction.received_by in renames:
                update["received_by"] = renames[transaction.received_by]
            if update:
                project.transactions[index] = transaction.model_copy(update=update)
                rewritten += len(update)
    return rewritten

"""
Core Data Models for Partner Ledger

These models define the strict schemas for the workspace document:
1. Enforce the shape of every ledger entry at runtime
2. Serialize to the camelCase document stored remotely
3. Accept older documents (numeric amounts, missing optional keys)

DESIGN DECISION: A recorded Transaction is frozen. Edits replace the whole
entry by id instead of mutating it, so a snapshot handed to a subscriber
can never change underneath it.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


DEFAULT_PARTNER_A_NAME = "Partner A"
DEFAULT_PARTNER_B_NAME = "Partner B"

MAX_DESCRIPTION_LENGTH = 500
MAX_PROJECT_NAME_LENGTH = 200
MAX_PARTNER_NAME_LENGTH = 100


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Kinds of ledger entries."""
    EXPENSE = "expense"        # paid by one partner
    REVENUE = "revenue"        # received by one partner
    SETTLEMENT = "settlement"  # transfer from one partner to the other


class LedgerModel(BaseModel):
    """Base for document models: snake_case in Python, camelCase on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# =============================================================================
# LEDGER ENTRIES
# =============================================================================

class Transaction(LedgerModel):
    """
    An immutable ledger entry.

    Expenses carry `paid_by`, revenue carries `received_by` and
    settlements carry both, naming two different partners.
    """
    model_config = ConfigDict(frozen=True)

    id: int = Field(
        ...,
        ge=0,
        description="Workspace-unique, monotonically assigned id"
    )
    type: TransactionType
    amount: Decimal = Field(
        ...,
        ge=0,
        allow_inf_nan=False,
        description="Non-negative currency amount"
    )
    transaction_date: date = Field(
        ...,
        alias="date",
        description="Calendar date of the entry"
    )
    description: str = Field(
        default="",
        max_length=MAX_DESCRIPTION_LENGTH,
    )
    paid_by: Optional[str] = None
    received_by: Optional[str] = None

    @model_validator(mode='after')
    def validate_parties(self) -> 'Transaction':
        """Each type names exactly the parties it needs."""
        if self.type == TransactionType.EXPENSE and not self.paid_by:
            raise ValueError("Expense must name the partner who paid")
        if self.type == TransactionType.REVENUE and not self.received_by:
            raise ValueError("Revenue must name the partner who received it")
        if self.type == TransactionType.SETTLEMENT:
            if not self.paid_by or not self.received_by:
                raise ValueError("Settlement must name both payer and receiver")
            if self.paid_by == self.received_by:
                raise ValueError("Settlement payer and receiver must differ")
        return self

    def parties(self) -> list[str]:
        """Partner names referenced by this entry."""
        return [name for name in (self.paid_by, self.received_by) if name]


class Project(LedgerModel):
    """
    A named project owning an ordered sequence of transactions.

    `is_settled` is a manual bookmark only. Whether a project is actually
    settled is always derived from its transactions.
    """

    id: int = Field(..., ge=0)
    name: str = Field(
        ...,
        min_length=1,
        max_length=MAX_PROJECT_NAME_LENGTH,
    )
    created_date: date = Field(default_factory=date.today)
    transactions: list[Transaction] = Field(default_factory=list)
    is_settled: Optional[bool] = None

    def index_of(self, transaction_id: int) -> Optional[int]:
        for index, transaction in enumerate(self.transactions):
            if transaction.id == transaction_id:
                return index
        return None


class PartnerSettings(LedgerModel):
    """Workspace-wide partner names."""

    partner_a_name: str = Field(
        default=DEFAULT_PARTNER_A_NAME,
        min_length=1,
        max_length=MAX_PARTNER_NAME_LENGTH,
    )
    partner_b_name: str = Field(
        default=DEFAULT_PARTNER_B_NAME,
        min_length=1,
        max_length=MAX_PARTNER_NAME_LENGTH,
    )

    @model_validator(mode='after')
    def validate_distinct(self) -> 'PartnerSettings':
        if self.partner_a_name == self.partner_b_name:
            raise ValueError("Partner names must be different")
        return self

    @property
    def partners(self) -> tuple[str, str]:
        return self.partner_a_name, self.partner_b_name

    def is_partner(self, name: Optional[str]) -> bool:
        return name is not None and name in self.partners

    def other_partner(self, name: str) -> str:
        """Return the partner who is not `name`."""
        if name == self.partner_a_name:
            return self.partner_b_name
        if name == self.partner_b_name:
            return self.partner_a_name
        raise ValueError(f"Unknown partner: {name}")


class WorkspaceState(LedgerModel):
    """
    The root aggregate persisted as one remote document.

    Store metadata such as `lastUpdated` and `version` is ignored on read.
    """

    projects: list[Project] = Field(default_factory=list)
    settings: PartnerSettings = Field(default_factory=PartnerSettings)
    current_project_id: Optional[int] = None

    @field_validator('projects', mode='before')
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        """Older documents store null instead of an empty list."""
        return [] if v is None else v

    @field_validator('settings', mode='before')
    @classmethod
    def none_as_default(cls, v: Any) -> Any:
        return PartnerSettings() if v is None else v

    @classmethod
    def from_document(cls, document: dict) -> 'WorkspaceState':
        """Build state from a stored document."""
        return cls.model_validate(document)

    def to_document(self) -> dict:
        """
        Convert to the JSON-ready document written to the remote store.

        Amounts become decimal strings, dates ISO strings.
        """
        return self.model_dump(mode="json", by_alias=True, exclude_none=True) | {
            "currentProjectId": self.current_project_id,
        }

    def find_project(self, project_id: Optional[int]) -> Optional[Project]:
        if project_id is None:
            return None
        for project in self.projects:
            if project.id == project_id:
                return project
        return None

    def max_id(self) -> int:
        """Highest project or transaction id in the workspace (0 if empty)."""
        ids = [0]
        for project in self.projects:
            ids.append(project.id)
            ids.extend(t.id for t in project.transactions)
        return max(ids)


# =============================================================================
# INPUT
# =============================================================================

class TransactionDraft(LedgerModel):
    """
    Unvalidated user input for a new or edited transaction.

    CRITICAL: This is PROPOSED data. It only becomes a Transaction after
    TransactionValidator accepts it. Amount and date are kept loose so the
    validator, not the model, reports what is wrong with them.

    For settlements `received_by` is ignored: the receiver is always the
    partner other than `paid_by`.
    """

    type: TransactionType
    amount: Union[Decimal, float, int, str, None] = None
    transaction_date: Union[date, str, None] = Field(default=None, alias="date")
    description: Optional[str] = None
    paid_by: Optional[str] = None
    received_by: Optional[str] = None

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> 'TransactionDraft':
        """Draft holding the exact values of a recorded transaction."""
        return cls(
            type=transaction.type,
            amount=transaction.amount,
            transaction_date=transaction.transaction_date,
            description=transaction.description,
            paid_by=transaction.paid_by,
            received_by=transaction.received_by,
        )

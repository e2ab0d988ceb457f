"""
Derived Report Models

Everything here is computed by the balance engine from transactions.
Nothing in this module is ever persisted.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


ZERO = Decimal("0")


class NetFlow(BaseModel):
    """Actual cash movement per partner."""
    model_config = ConfigDict(frozen=True)

    partner_a: Decimal = ZERO
    partner_b: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.partner_a + self.partner_b


class PartnerBalance(BaseModel):
    """
    One partner's position in the shared-cost view.

    `expenses_owed` / `revenue_owed` hold the half-shares attributed to this
    partner for entries the other partner paid or received.
    """
    model_config = ConfigDict(frozen=True)

    expenses_paid: Decimal = ZERO
    revenue_received: Decimal = ZERO
    expenses_owed: Decimal = ZERO
    revenue_owed: Decimal = ZERO
    settlement_paid: Decimal = ZERO
    settlement_received: Decimal = ZERO
    net_balance: Decimal = ZERO

    @property
    def net_flow(self) -> Decimal:
        """Cash view of the same figures, settlements included."""
        return (
            self.revenue_received
            + self.settlement_received
            - self.expenses_paid
            - self.settlement_paid
        )


class Balances(BaseModel):
    """Shared-cost view for both partners."""
    model_config = ConfigDict(frozen=True)

    partner_a: PartnerBalance
    partner_b: PartnerBalance


class SettlementRecommendation(BaseModel):
    """
    The single payment that would equalize both partners' net flow.

    When the project is settled `payer` and `receiver` are None.
    """
    model_config = ConfigDict(frozen=True)

    settlement_amount: Decimal = Field(..., ge=0)
    payer: Optional[str] = None
    receiver: Optional[str] = None
    partner_a_net_flow: Decimal = ZERO
    partner_b_net_flow: Decimal = ZERO

    @property
    def is_settled(self) -> bool:
        return self.payer is None


class ProjectTotals(BaseModel):
    """Expense and revenue totals. Settlements are excluded."""
    model_config = ConfigDict(frozen=True)

    total_expenses: Decimal = ZERO
    total_revenue: Decimal = ZERO

    @property
    def net_profit(self) -> Decimal:
        """Return total_revenue minus total_expenses."""
        return self.total_revenue - self.total_expenses


class ProjectReport(BaseModel):
    """Everything a project view shows, computed in one pass."""
    model_config = ConfigDict(frozen=True)

    project_id: int
    project_name: str
    transaction_count: int = Field(..., ge=0)
    totals: ProjectTotals
    net_flow: NetFlow
    balances: Balances
    settlement: SettlementRecommendation

"""
Balance Engine

Pure functions deriving partner positions from a transaction list.
Nothing here mutates its input or reads anything but its arguments.

Two views are computed:

NET FLOW (cash view)
    revenue received + settlement received - expenses paid - settlement paid

NET BALANCE (shared-cost view)
    Every expense and every revenue is split 50/50. Half of what a partner
    paid is owed to them by the other; half of what they received is owed
    by them to the other. Settlements already paid apply 1:1.

SETTLEMENT POLICY: whether a project is settled is ALWAYS derived live from
net flow. The engine can propose a settlement draft, but never records one;
a settlement only enters the ledger when the caller records it explicitly.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from partner_ledger.models.ledger import (
    PartnerSettings,
    Project,
    Transaction,
    TransactionDraft,
    TransactionType,
)
from partner_ledger.models.reports import (
    Balances,
    NetFlow,
    PartnerBalance,
    ProjectReport,
    ProjectTotals,
    SettlementRecommendation,
)
from partner_ledger.validation import default_settlement_description


# Absolute tolerance below which two net flows count as equal
DEFAULT_SETTLEMENT_TOLERANCE = Decimal("0.01")

_TWO = Decimal("2")

_FIELDS = (
    "expenses_paid",
    "revenue_received",
    "expenses_owed",
    "revenue_owed",
    "settlement_paid",
    "settlement_received",
)


def _to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _tally(
    transactions: Iterable[Transaction],
    partners: PartnerSettings,
    include_settlements: bool = True,
) -> dict[str, dict[str, Decimal]]:
    """Accumulate per-partner sums. Names that match no partner are ignored."""
    a_name, b_name = partners.partners
    tally = {name: {field: Decimal("0") for field in _FIELDS} for name in (a_name, b_name)}

    def other(name: str) -> str:
        return b_name if name == a_name else a_name

    for t in transactions:
        if t.type == TransactionType.EXPENSE:
            if t.paid_by in tally:
                tally[t.paid_by]["expenses_paid"] += t.amount
                tally[other(t.paid_by)]["expenses_owed"] += t.amount / _TWO
        elif t.type == TransactionType.REVENUE:
            if t.received_by in tally:
                tally[t.received_by]["revenue_received"] += t.amount
                tally[other(t.received_by)]["revenue_owed"] += t.amount / _TWO
        elif t.type == TransactionType.SETTLEMENT and include_settlements:
            if t.paid_by in tally:
                tally[t.paid_by]["settlement_paid"] += t.amount
            if t.received_by in tally:
                tally[t.received_by]["settlement_received"] += t.amount

    return {"a": tally[a_name], "b": tally[b_name]}


def _flow(sums: dict[str, Decimal]) -> Decimal:
    return (
        sums["revenue_received"]
        + sums["settlement_received"]
        - sums["expenses_paid"]
        - sums["settlement_paid"]
    )


def net_flow(
    transactions: Iterable[Transaction],
    partners: PartnerSettings,
    include_settlements: bool = True,
) -> NetFlow:
    """
    Actual cash movement per partner.

    Args:
        transactions: Entries of one project
        partners: Configured partner names
        include_settlements: Count settlement transfers (default) or skip them

    Returns:
        NetFlow for partner A and partner B
    """
    tally = _tally(transactions, partners, include_settlements)
    return NetFlow(partner_a=_flow(tally["a"]), partner_b=_flow(tally["b"]))


def _partner_balance(sums: dict[str, Decimal]) -> PartnerBalance:
    is_owed = sums["expenses_paid"] / _TWO + sums["revenue_owed"]
    owes = sums["expenses_owed"] + sums["revenue_received"] / _TWO
    settled = sums["settlement_received"] - sums["settlement_paid"]
    return PartnerBalance(**sums, net_balance=is_owed - owes + settled)


def balances(
    transactions: Iterable[Transaction],
    partners: PartnerSettings,
) -> Balances:
    """
    Shared-cost view of both partners.

    Without settlements the two net balances always sum to zero: each half
    one partner is owed is a half the other owes.
    """
    tally = _tally(transactions, partners, include_settlements=True)
    return Balances(
        partner_a=_partner_balance(tally["a"]),
        partner_b=_partner_balance(tally["b"]),
    )


def settlement_needed(
    transactions: Iterable[Transaction],
    partners: PartnerSettings,
    tolerance: Decimal = DEFAULT_SETTLEMENT_TOLERANCE,
) -> SettlementRecommendation:
    """
    The payment that equalizes both partners' net flow.

    Net flows include settlements already made. If they differ by less than
    `tolerance` the project is settled. Otherwise the partner with the
    higher net flow pays half the difference to the other, which moves both
    to the midpoint.
    """
    flows = net_flow(transactions, partners, include_settlements=True)
    difference = abs(flows.partner_a - flows.partner_b)
    tolerance = _to_decimal(tolerance)

    payer = None
    receiver = None
    if difference >= tolerance:
        if flows.partner_a > flows.partner_b:
            payer, receiver = partners.partner_a_name, partners.partner_b_name
        else:
            payer, receiver = partners.partner_b_name, partners.partner_a_name

    return SettlementRecommendation(
        settlement_amount=difference / _TWO,
        payer=payer,
        receiver=receiver,
        partner_a_net_flow=flows.partner_a,
        partner_b_net_flow=flows.partner_b,
    )


def settlement_draft(
    recommendation: SettlementRecommendation,
    on: Optional[date] = None,
) -> Optional[TransactionDraft]:
    """
    Turn a recommendation into a settlement draft ready to record.

    Returns None for a settled project. The draft is only a proposal:
    nothing enters the ledger until the caller records it.
    """
    if recommendation.is_settled:
        return None
    return TransactionDraft(
        type=TransactionType.SETTLEMENT,
        amount=recommendation.settlement_amount,
        transaction_date=on or date.today(),
        description=default_settlement_description(recommendation.receiver),
        paid_by=recommendation.payer,
    )


def transaction_totals(transactions: Iterable[Transaction]) -> ProjectTotals:
    """Expense and revenue totals of one transaction list (settlements excluded)."""
    expenses = Decimal("0")
    revenue = Decimal("0")
    for t in transactions:
        if t.type == TransactionType.EXPENSE:
            expenses += t.amount
        elif t.type == TransactionType.REVENUE:
            revenue += t.amount
    return ProjectTotals(total_expenses=expenses, total_revenue=revenue)


def project_totals(projects: Iterable[Project]) -> ProjectTotals:
    """
    Expense and revenue totals across every project.

    Independent of whether any project is settled.
    """
    return transaction_totals(
        t for project in projects for t in project.transactions
    )


def project_report(
    project: Project,
    partners: PartnerSettings,
    tolerance: Decimal = DEFAULT_SETTLEMENT_TOLERANCE,
) -> ProjectReport:
    """Every derived figure for one project."""
    transactions = project.transactions
    return ProjectReport(
        project_id=project.id,
        project_name=project.name,
        transaction_count=len(transactions),
        totals=transaction_totals(transactions),
        net_flow=net_flow(transactions, partners, include_settlements=True),
        balances=balances(transactions, partners),
        settlement=settlement_needed(transactions, partners, tolerance),
    )

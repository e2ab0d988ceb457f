"""
Transaction Validation

DESIGN DECISION: Validation is split from the models.

- The models (Transaction) enforce structural shape: a settlement has two
  different parties, an amount is never negative.
- The validator checks user input against the CURRENT workspace: partner
  names must match the configured partners, descriptions are required for
  expenses and revenue, amounts and dates must parse.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them, and the caller rejects the mutation on any error.
The one derived value is a settlement's receiver, which is never
user-supplied: it is always the partner other than the payer.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from partner_ledger.config import LedgerSettings, get_settings
from partner_ledger.errors import ValidationError
from partner_ledger.models.ledger import (
    MAX_DESCRIPTION_LENGTH,
    PartnerSettings,
    Transaction,
    TransactionDraft,
    TransactionType,
)
from partner_ledger.models.validation import ValidationIssue, ValidationResult


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse a currency amount.

    Returns None unless the value is a finite number. Floats go through
    str() so 0.1 stays 0.1 instead of its binary expansion.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        amount = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            amount = Decimal(text)
        except InvalidOperation:
            return None
    if not amount.is_finite():
        return None
    return amount


def parse_date(value: Any) -> Optional[date]:
    """Parse a calendar date from a date, datetime or ISO 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def default_settlement_description(receiver: str) -> str:
    return f"paid to {receiver}"


class TransactionValidator:
    """Validates transaction drafts against the workspace's partner settings."""

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    def _validate_amount(self, draft: TransactionDraft) -> list[ValidationIssue]:
        issues = []
        amount = parse_amount(draft.amount)

        if amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_format" if draft.amount not in (None, "") else "missing",
                message=f"Amount must be a number (got {draft.amount!r})",
                severity="error",
                suggested_fix="Enter an amount such as 125.50",
            ))
            return issues

        if amount < 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount cannot be negative",
                severity="error",
                suggested_fix="Record money coming in as revenue instead",
            ))
        elif amount == 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message="Amount is zero",
                severity="warning",
            ))
        elif amount > Decimal(str(self._settings.max_transaction_amount)):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        return issues

    def _validate_date(self, draft: TransactionDraft) -> list[ValidationIssue]:
        issues = []
        parsed = parse_date(draft.transaction_date)

        if parsed is None:
            issues.append(ValidationIssue(
                field="date",
                issue_type="missing" if draft.transaction_date in (None, "") else "invalid_format",
                message=f"Date must be a valid calendar date (got {draft.transaction_date!r})",
                severity="error",
                suggested_fix="Use the YYYY-MM-DD format",
            ))
            return issues

        max_future = date.today() + timedelta(days=self._settings.future_date_tolerance_days)
        if parsed > max_future:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Date ({parsed}) is far in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        return issues

    def _validate_parties(
        self,
        draft: TransactionDraft,
        partners: PartnerSettings,
    ) -> list[ValidationIssue]:
        issues = []
        names = " or ".join(partners.partners)

        if draft.type == TransactionType.REVENUE:
            if not partners.is_partner(draft.received_by):
                issues.append(ValidationIssue(
                    field="received_by",
                    issue_type="unknown_partner",
                    message=f"Revenue must be received by {names} (got {draft.received_by!r})",
                    severity="error",
                ))
        elif not partners.is_partner(draft.paid_by):
            issues.append(ValidationIssue(
                field="paid_by",
                issue_type="unknown_partner",
                message=f"{draft.type.value.capitalize()} must be paid by {names} (got {draft.paid_by!r})",
                severity="error",
            ))

        return issues

    def _validate_description(self, draft: TransactionDraft) -> list[ValidationIssue]:
        description = (draft.description or "").strip()
        if len(description) > MAX_DESCRIPTION_LENGTH:
            return [ValidationIssue(
                field="description",
                issue_type="too_long",
                message=f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters",
                severity="error",
                suggested_fix="Shorten the description",
            )]
        if draft.type == TransactionType.SETTLEMENT or description:
            return []
        return [ValidationIssue(
            field="description",
            issue_type="missing",
            message=f"A description is required for {draft.type.value}",
            severity="error",
            suggested_fix="Describe what the money was for",
        )]

    def validate(
        self,
        draft: TransactionDraft,
        partners: PartnerSettings,
    ) -> ValidationResult:
        """
        Run every check on a draft.

        Args:
            draft: The unvalidated input
            partners: Partner names configured at the time of recording

        Returns:
            ValidationResult with all issues found
        """
        issues = []
        issues.extend(self._validate_amount(draft))
        issues.extend(self._validate_date(draft))
        issues.extend(self._validate_parties(draft, partners))
        issues.extend(self._validate_description(draft))

        warnings = [issue.message for issue in issues if issue.severity == "warning"]

        return ValidationResult(
            is_valid=not any(issue.severity == "error" for issue in issues),
            issues=issues,
            warnings=warnings,
        )

    def build_transaction(
        self,
        draft: TransactionDraft,
        partners: PartnerSettings,
        transaction_id: int,
    ) -> Transaction:
        """
        Validate a draft and turn it into a Transaction.

        Raises:
            ValidationError: If any error-level issue was found
        """
        result = self.validate(draft, partners)
        if not result.is_valid:
            messages = "; ".join(issue.message for issue in result.errors)
            raise ValidationError(f"Invalid {draft.type.value}: {messages}", result.issues)

        description = (draft.description or "").strip()
        paid_by = None
        received_by = None

        if draft.type == TransactionType.EXPENSE:
            paid_by = draft.paid_by
        elif draft.type == TransactionType.REVENUE:
            received_by = draft.received_by
        else:
            paid_by = draft.paid_by
            received_by = partners.other_partner(draft.paid_by)
            description = description or default_settlement_description(received_by)

        return Transaction(
            id=transaction_id,
            type=draft.type,
            amount=parse_amount(draft.amount),
            transaction_date=parse_date(draft.transaction_date),
            description=description,
            paid_by=paid_by,
            received_by=received_by,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Generate a short summary of validation results for display."""
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []
        if result.has_errors:
            lines.append("Please fix the following:")
            for issue in result.errors:
                lines.append(f"   • {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)

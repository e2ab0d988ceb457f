"""Validation package."""

from partner_ledger.validation.validator import (
    TransactionValidator,
    default_settlement_description,
    parse_amount,
    parse_date,
)

__all__ = [
    "TransactionValidator",
    "default_settlement_description",
    "parse_amount",
    "parse_date",
]

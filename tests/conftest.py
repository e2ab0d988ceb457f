"""Shared fixtures for the Partner Ledger test-suite."""

from datetime import date
from decimal import Decimal

import pytest

from partner_ledger.config import LedgerSettings
from partner_ledger.ledger import IdGenerator, TransactionStore
from partner_ledger.models import (
    PartnerSettings,
    Project,
    Transaction,
    TransactionType,
)
from partner_ledger.services.storage import InMemoryDocumentStore
from partner_ledger.validation import TransactionValidator


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    return LedgerSettings(
        default_partner_a_name="Partner A",
        default_partner_b_name="Partner B",
        remote_timeout_seconds=1.0,
    )


@pytest.fixture
def partners() -> PartnerSettings:
    return PartnerSettings()


@pytest.fixture
def validator(ledger_settings: LedgerSettings) -> TransactionValidator:
    return TransactionValidator(ledger_settings)


@pytest.fixture
def id_generator() -> IdGenerator:
    return IdGenerator()


@pytest.fixture
def transaction_store(validator: TransactionValidator, id_generator: IdGenerator) -> TransactionStore:
    return TransactionStore(validator, id_generator)


@pytest.fixture
def project() -> Project:
    return Project(id=1, name="Website redesign", created_date=date(2024, 3, 1))


@pytest.fixture
def document_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def make_transaction():
    """Factory for recorded transactions without going through validation."""
    counter = {"next": 100}

    def _make(
        type: TransactionType,
        amount: str,
        paid_by: str = None,
        received_by: str = None,
        on: date = date(2024, 3, 10),
        description: str = "entry",
    ) -> Transaction:
        counter["next"] += 1
        return Transaction(
            id=counter["next"],
            type=type,
            amount=Decimal(amount),
            transaction_date=on,
            description=description,
            paid_by=paid_by,
            received_by=received_by,
        )

    return _make

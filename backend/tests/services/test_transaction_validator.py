import pytest
from datetime import date, datetime
from decimal import Decimal

from backend.app.errors import NotFoundError, ValidationError
from backend.app.models.models import Envelope, Payee, TransactionType
from backend.app.services.transaction_validator import (
    FORBIDDEN_REFERENCES, REQUIRED_REFERENCES, resolve_references, validate_transaction_shape
)

VALID_REFERENCES = {
    TransactionType.INCOME: {"income_source_id": "src"},
    TransactionType.ALLOCATION: {"to_envelope_id": "env-b"},
    TransactionType.EXPENSE: {"from_envelope_id": "env-a", "payee_id": "payee"},
    TransactionType.DEBT_PAYMENT: {"from_envelope_id": "env-a", "payee_id": "payee"},
    TransactionType.TRANSFER: {"from_envelope_id": "env-a", "to_envelope_id": "env-b"},
}

def request_for(transaction_type, **overrides):
    values = {
        "transaction_type": transaction_type,
        "amount": Decimal("10.00"),
        "transaction_date": date(2025, 7, 1),
        "description": "test",
        "from_envelope_id": None,
        "to_envelope_id": None,
        "income_source_id": None,
        "payee_id": None,
    }
    values.update(VALID_REFERENCES[TransactionType(transaction_type)])
    values.update(overrides)
    return values


@pytest.mark.parametrize("transaction_type", list(TransactionType))
def test_valid_shape_passes(transaction_type):
    normalized = validate_transaction_shape(request_for(transaction_type))

    assert normalized["transaction_type"] == transaction_type
    assert normalized["amount"] == Decimal("10.00")


@pytest.mark.parametrize("transaction_type, field", [
    (transaction_type, field)
    for transaction_type, fields in FORBIDDEN_REFERENCES.items()
    for field in fields
])
def test_forbidden_reference_rejected(transaction_type, field):
    """Setting any reference a type does not allow fails on that field"""
    with pytest.raises(ValidationError) as excinfo:
        validate_transaction_shape(request_for(transaction_type, **{field: "unexpected"}))

    assert excinfo.value.field == field


@pytest.mark.parametrize("transaction_type, field", [
    (transaction_type, field)
    for transaction_type, fields in REQUIRED_REFERENCES.items()
    for field in fields
])
def test_missing_required_reference_rejected(transaction_type, field):
    with pytest.raises(ValidationError) as excinfo:
        validate_transaction_shape(request_for(transaction_type, **{field: None}))

    assert excinfo.value.field == field


def test_transfer_to_same_envelope_rejected():
    with pytest.raises(ValidationError) as excinfo:
        validate_transaction_shape(request_for(
            TransactionType.TRANSFER, from_envelope_id="env-a", to_envelope_id="env-a"
        ))

    assert excinfo.value.field == "to_envelope_id"
    assert "same envelope" in str(excinfo.value)


@pytest.mark.parametrize("amount", [0, "0.00", -5, "-0.01", "12.345", "abc", None, True, "NaN", "Infinity", "10000000000.00", "1E+30", "1e30", "123456789012345678901234567890.5"])
def test_bad_amount_rejected(amount):
    with pytest.raises(ValidationError) as excinfo:
        validate_transaction_shape(request_for(TransactionType.INCOME, amount=amount))

    assert excinfo.value.field == "amount"


@pytest.mark.parametrize("amount, expected", [
    (5, Decimal("5.00")),
    ("19.9", Decimal("19.90")),
    (0.1, Decimal("0.10")),
    (Decimal("1000.00"), Decimal("1000.00")),
])
def test_amount_normalized_to_cents(amount, expected):
    normalized = validate_transaction_shape(request_for(TransactionType.INCOME, amount=amount))

    assert normalized["amount"] == expected
    assert normalized["amount"].as_tuple().exponent == -2


def test_unknown_type_rejected():
    with pytest.raises(ValidationError) as excinfo:
        validate_transaction_shape({**request_for(TransactionType.INCOME), "transaction_type": "refund"})

    assert excinfo.value.field == "transaction_type"


def test_future_date_allowed():
    normalized = validate_transaction_shape(request_for(TransactionType.INCOME, transaction_date=date(2099, 1, 1)))

    assert normalized["transaction_date"] == date(2099, 1, 1)


@pytest.mark.parametrize("value, expected", [
    ("2025-02-28", date(2025, 2, 28)),
    (datetime(2025, 3, 1, 12, 30), date(2025, 3, 1)),
])
def test_date_coercion(value, expected):
    normalized = validate_transaction_shape(request_for(TransactionType.INCOME, transaction_date=value))

    assert normalized["transaction_date"] == expected


@pytest.mark.parametrize("value", ["2025-02-30", "yesterday", None, 20250101])
def test_invalid_date_rejected(value):
    with pytest.raises(ValidationError) as excinfo:
        validate_transaction_shape(request_for(TransactionType.INCOME, transaction_date=value))

    assert excinfo.value.field == "transaction_date"


def test_description_too_long_rejected():
    with pytest.raises(ValidationError) as excinfo:
        validate_transaction_shape(request_for(TransactionType.INCOME, description="x" * 501))

    assert excinfo.value.field == "description"


# Reference resolution against the store

def test_resolve_references_unknown_envelope(db_session, test_budget):
    values = validate_transaction_shape(request_for(TransactionType.ALLOCATION, to_envelope_id="missing"))

    with pytest.raises(NotFoundError) as excinfo:
        resolve_references(db_session, test_budget.id, values)

    assert excinfo.value.entity == "Envelope"
    assert excinfo.value.entity_id == "missing"


def test_resolve_references_other_budget(db_session, test_budget, other_budget):
    foreign = Envelope(budget_id=other_budget.id, name="Theirs", current_balance=0)
    db_session.add(foreign)
    db_session.commit()

    values = validate_transaction_shape(request_for(TransactionType.ALLOCATION, to_envelope_id=foreign.id))

    with pytest.raises(NotFoundError):
        resolve_references(db_session, test_budget.id, values)


def test_resolve_references_inactive_payee(db_session, test_budget, groceries):
    payee = Payee(budget_id=test_budget.id, name="Closed shop", is_active=False)
    db_session.add(payee)
    db_session.commit()

    values = validate_transaction_shape(request_for(
        TransactionType.EXPENSE, from_envelope_id=groceries.id, payee_id=payee.id
    ))

    with pytest.raises(ValidationError) as excinfo:
        resolve_references(db_session, test_budget.id, values)
    assert excinfo.value.field == "payee_id"

    # Untouched references on an update are allowed to be inactive
    resolve_references(db_session, test_budget.id, values, skip_active_check=["payee_id"])

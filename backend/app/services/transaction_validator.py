"""
Structural validation of transaction requests.

Runs before any balance effect is computed. validate_transaction_shape() is
pure; resolve_references() checks that referenced rows exist inside the
same budget.
"""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable

from sqlalchemy.orm import Session

from backend.app.config import get_settings
from backend.app.errors import NotFoundError, ValidationError
from backend.app.models.models import Category, Envelope, IncomeSource, Payee, TransactionType

CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("9999999999.99")  # Numeric(12, 2)

REFERENCE_FIELDS = ("from_envelope_id", "to_envelope_id", "income_source_id", "payee_id")

REQUIRED_REFERENCES = {
    TransactionType.INCOME: ("income_source_id",),
    TransactionType.ALLOCATION: ("to_envelope_id",),
    TransactionType.EXPENSE: ("from_envelope_id", "payee_id"),
    TransactionType.DEBT_PAYMENT: ("from_envelope_id", "payee_id"),
    TransactionType.TRANSFER: ("from_envelope_id", "to_envelope_id"),
}

FORBIDDEN_REFERENCES = {
    transaction_type: tuple(field for field in REFERENCE_FIELDS if field not in required)
    for transaction_type, required in REQUIRED_REFERENCES.items()
}

# reference field -> (model, entity name)
_REFERENCE_MODELS = {
    "from_envelope_id": (Envelope, "Envelope"),
    "to_envelope_id": (Envelope, "Envelope"),
    "income_source_id": (IncomeSource, "Income source"),
    "payee_id": (Payee, "Payee"),
    "category_id": (Category, "Category"),
}


def validate_transaction_type(value: Any) -> TransactionType:
    if value is None:
        raise ValidationError("transaction_type is required", field="transaction_type")
    try:
        return TransactionType(value)
    except ValueError:
        raise ValidationError(f"Invalid transaction type: {value}", field="transaction_type")


def validate_amount(value: Any) -> Decimal:
    """Positive, non-zero, at most two decimal places. Returns the amount at scale 2."""
    if value is None or isinstance(value, bool):
        raise ValidationError("Transaction amount is required", field="amount")
    try:
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"Transaction amount is not a number: {value!r}", field="amount")

    if not amount.is_finite():
        raise ValidationError("Transaction amount must be a finite number", field="amount")
    if amount <= 0:
        raise ValidationError("Transaction amount must be positive", field="amount")
    # Bounded before quantize, which overflows the decimal context on huge values
    if amount > MAX_AMOUNT:
        raise ValidationError(f"Transaction amount cannot exceed {MAX_AMOUNT}", field="amount")
    if amount != amount.quantize(CENT):
        raise ValidationError("Transaction amount can have at most 2 decimal places", field="amount")
    return amount.quantize(CENT)


def validate_transaction_date(value: Any) -> date:
    # Future dates are allowed, income can be scheduled ahead
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    raise ValidationError(f"Invalid transaction date: {value!r}", field="transaction_date")


def validate_description(value: Any) -> Any:
    max_length = get_settings().description_max_length
    if value is not None and len(value) > max_length:
        raise ValidationError(
            f"Transaction description must be {max_length} characters or less",
            field="description"
        )
    return value


def validate_references(transaction_type: TransactionType, values: Dict[str, Any]) -> None:
    """Enforce the single legal reference shape of a transaction type"""
    for field in REQUIRED_REFERENCES[transaction_type]:
        if not values.get(field):
            raise ValidationError(
                f"{transaction_type.value} transactions require {field}",
                field=field
            )
    for field in FORBIDDEN_REFERENCES[transaction_type]:
        if values.get(field):
            raise ValidationError(
                f"{transaction_type.value} transactions must not set {field}",
                field=field
            )
    if transaction_type == TransactionType.TRANSFER and values["from_envelope_id"] == values["to_envelope_id"]:
        raise ValidationError("Cannot transfer to the same envelope", field="to_envelope_id")


def validate_transaction_shape(values: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a transaction request given as a field dict.

    Returns a normalized copy (enum type, amount at scale 2, date object).
    Raises ValidationError naming the first offending field.
    """
    normalized = dict(values)
    transaction_type = validate_transaction_type(values.get("transaction_type"))
    normalized["transaction_type"] = transaction_type
    normalized["amount"] = validate_amount(values.get("amount"))
    normalized["transaction_date"] = validate_transaction_date(values.get("transaction_date"))
    normalized["description"] = validate_description(values.get("description"))
    validate_references(transaction_type, normalized)
    return normalized


def resolve_references(
    db: Session,
    budget_id: str,
    values: Dict[str, Any],
    skip_active_check: Iterable[str] = ()
) -> None:
    """
    Check every referenced row exists in the budget and is usable.

    Rows from another budget are reported as missing. Inactive envelopes,
    payees and income sources are rejected unless the field is listed in
    skip_active_check (an update that leaves an existing reference alone).
    """
    skip = set(skip_active_check)
    for field, (model, entity) in _REFERENCE_MODELS.items():
        reference_id = values.get(field)
        if not reference_id:
            continue
        row = db.query(model).filter(model.id == reference_id, model.budget_id == budget_id).first()
        if not row:
            raise NotFoundError(
                entity,
                reference_id,
                message=f"{entity} {reference_id} not found or does not belong to this budget"
            )
        if field not in skip and getattr(row, "is_active", True) is False:
            raise ValidationError(f"{entity} {reference_id} is inactive", field=field)

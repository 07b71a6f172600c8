"""
Audit trail for ledger transactions.

Every create, update, soft delete and restore appends exactly one
TransactionEvent inside the same unit of work as the change itself. Events
carry full before/after snapshots, so the state of a transaction at any
point can be rebuilt from its event history alone.
"""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from backend.app.errors import NotFoundError
from backend.app.models.models import Transaction, TransactionEvent, TransactionEventType
from backend.app.services.budget_service import get_budget

SNAPSHOT_FIELDS = (
    "id",
    "budget_id",
    "transaction_type",
    "amount",
    "transaction_date",
    "description",
    "notes",
    "from_envelope_id",
    "to_envelope_id",
    "income_source_id",
    "payee_id",
    "category_id",
    "is_cleared",
    "is_reconciled",
    "is_deleted",
    "deleted_at",
    "deleted_by",
)

_EVENT_VERBS = {
    TransactionEventType.CREATED: "created",
    TransactionEventType.UPDATED: "modified",
    TransactionEventType.DELETED: "soft deleted",
    TransactionEventType.RESTORED: "restored from soft delete",
}


def _json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value.quantize(Decimal("0.01")))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def snapshot_transaction(transaction) -> Dict[str, Any]:
    """JSON-safe copy of every ledger-relevant field"""
    return {field: _json_value(getattr(transaction, field)) for field in SNAPSHOT_FIELDS}


def diff_snapshots(old_values: Optional[Dict[str, Any]], new_values: Dict[str, Any]) -> List[str]:
    """Sorted names of fields whose value differs between two snapshots"""
    if old_values is None:
        return sorted(field for field, value in new_values.items() if value is not None)
    fields = set(old_values) | set(new_values)
    return sorted(field for field in fields if old_values.get(field) != new_values.get(field))


def describe_event(event_type: TransactionEventType, values: Dict[str, Any]) -> str:
    return f"Transaction {_EVENT_VERBS[event_type]}: {values['transaction_type']} for ${values['amount']}"


def record_transaction_event(
    db: Session,
    transaction: Transaction,
    event_type: TransactionEventType,
    old_values: Optional[Dict[str, Any]],
    new_values: Dict[str, Any],
    actor: Optional[str]
) -> TransactionEvent:
    """
    Append one audit event to the caller's unit of work.

    The event is flushed so a failing audit write aborts the surrounding
    operation, but never committed here.
    """
    event = TransactionEvent(
        transaction_id=transaction.id,
        budget_id=transaction.budget_id,
        event_type=event_type,
        event_description=describe_event(event_type, new_values),
        changed_fields=diff_snapshots(old_values, new_values),
        old_values=old_values,
        new_values=new_values,
        performed_by=actor,
    )
    db.add(event)
    db.flush()
    return event


def get_transaction_events(db: Session, transaction_id: str, user_id: str) -> List[TransactionEvent]:
    """Full history of one transaction, oldest first"""
    transaction = db.query(Transaction).filter(Transaction.id == transaction_id).first()
    if not transaction:
        raise NotFoundError("Transaction", transaction_id)
    get_budget(db, transaction.budget_id, user_id)

    return db.query(TransactionEvent).filter(
        TransactionEvent.transaction_id == transaction_id
    ).order_by(TransactionEvent.performed_at.asc()).all()


def get_budget_events(
    db: Session,
    budget_id: str,
    user_id: str,
    event_type: Optional[TransactionEventType] = None,
    limit: int = 100,
    offset: int = 0
) -> List[TransactionEvent]:
    """Audit events for a budget, newest first"""
    get_budget(db, budget_id, user_id)

    query = db.query(TransactionEvent).filter(TransactionEvent.budget_id == budget_id)
    if event_type:
        query = query.filter(TransactionEvent.event_type == event_type)

    return query.order_by(TransactionEvent.performed_at.desc()).offset(offset).limit(limit).all()

"""
Ledger engine: create, update, soft delete and restore transactions.

Each mutating operation validates first, then runs one unit of work that
writes the transaction row, applies its balance effect and appends one audit
event. Either all three persist or none do.
"""
import logging
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from backend.app.database import unit_of_work
from backend.app.errors import NotFoundError, ValidationError
from backend.app.models.models import Budget, Transaction, TransactionEventType
from backend.app.schemas.transactions import TransactionCreate, TransactionFilter, TransactionUpdate
from backend.app.services.audit_service import record_transaction_event, snapshot_transaction
from backend.app.services.balance_effects import apply_transaction_effect
from backend.app.services.budget_service import get_budget
from backend.app.services.transaction_state import TransactionState, require_state, transition
from backend.app.services.transaction_validator import (
    REFERENCE_FIELDS, resolve_references, validate_transaction_shape
)

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
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
)

FLAG_FIELDS = ("is_cleared", "is_reconciled")

def _load_transaction(db: Session, transaction_id: str, user_id: str, lock: bool = False) -> Transaction:
    query = db.query(Transaction).filter(Transaction.id == transaction_id)
    if lock:
        # Serialize writers on the row and make sure we act on its latest state
        query = query.with_for_update().populate_existing()
    transaction = query.first()

    if not transaction:
        raise NotFoundError("Transaction", transaction_id)

    # Transactions in budgets the caller cannot see are reported as missing
    owner = db.query(Budget.user_id).filter(Budget.id == transaction.budget_id).scalar()
    if owner != user_id:
        raise NotFoundError("Transaction", transaction_id)
    return transaction

def create_transaction(db: Session, budget_id: str, transaction_data: TransactionCreate, user_id: str) -> Transaction:
    """
    Create a transaction and apply its balance effect.

    Raises:
        ValidationError: malformed request or illegal reference shape
        NotFoundError: unknown budget, envelope, payee, income source or category
        StoreError: database failure, nothing was written
    """
    get_budget(db, budget_id, user_id)

    values = validate_transaction_shape(transaction_data.model_dump())
    resolve_references(db, budget_id, values)

    transaction = Transaction(budget_id=budget_id, created_by=user_id, **values)
    with unit_of_work(db):
        db.add(transaction)
        db.flush()
        apply_transaction_effect(db, transaction)
        record_transaction_event(
            db, transaction, TransactionEventType.CREATED,
            old_values=None, new_values=snapshot_transaction(transaction), actor=user_id
        )
    db.refresh(transaction)

    logger.info(
        "Created %s transaction %s amount=%s budget=%s by %s",
        transaction.transaction_type.value, transaction.id, transaction.amount, budget_id, user_id
    )
    return transaction

def update_transaction(db: Session, transaction_id: str, transaction_update: TransactionUpdate, user_id: str) -> Transaction:
    """
    Apply a partial update to an active transaction.

    The old balance effect is reversed and the new one applied in the same
    unit of work. A patch that changes nothing writes nothing.
    """
    # Everything after the row lock runs in the unit of work, so every exit releases it
    with unit_of_work(db):
        transaction = _load_transaction(db, transaction_id, user_id, lock=True)
        require_state(transaction, TransactionState.ACTIVE, "update")

        changes = transaction_update.model_dump(exclude_unset=True)
        for field in FLAG_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationError(f"{field} cannot be null", field=field)

        current = {field: getattr(transaction, field) for field in EDITABLE_FIELDS}
        values = validate_transaction_shape({**current, **changes})
        changed = any(values[field] != current[field] for field in EDITABLE_FIELDS)

        if changed:
            unchanged_refs = [field for field in REFERENCE_FIELDS + ("category_id",) if values[field] == current[field]]
            resolve_references(db, transaction.budget_id, values, skip_active_check=unchanged_refs)

            old_values = snapshot_transaction(transaction)
            apply_transaction_effect(db, transaction, reverse=True)
            for field, value in values.items():
                setattr(transaction, field, value)
            # Version check: a concurrent writer makes this flush fail
            db.flush()
            apply_transaction_effect(db, transaction)
            record_transaction_event(
                db, transaction, TransactionEventType.UPDATED,
                old_values=old_values, new_values=snapshot_transaction(transaction), actor=user_id
            )
    db.refresh(transaction)

    if changed:
        logger.info("Updated transaction %s by %s", transaction.id, user_id)
    return transaction

def soft_delete_transaction(db: Session, transaction_id: str, user_id: str) -> Transaction:
    """Mark a transaction deleted and reverse its balance effect"""
    with unit_of_work(db):
        transaction = _load_transaction(db, transaction_id, user_id, lock=True)
        old_values = snapshot_transaction(transaction)

        transition(transaction, TransactionState.DELETED, actor=user_id)
        db.flush()
        apply_transaction_effect(db, transaction, reverse=True)
        record_transaction_event(
            db, transaction, TransactionEventType.DELETED,
            old_values=old_values, new_values=snapshot_transaction(transaction), actor=user_id
        )
    db.refresh(transaction)

    logger.info("Soft deleted transaction %s by %s", transaction.id, user_id)
    return transaction

def restore_transaction(db: Session, transaction_id: str, user_id: str) -> Transaction:
    """Bring a soft-deleted transaction back and re-apply its balance effect"""
    with unit_of_work(db):
        transaction = _load_transaction(db, transaction_id, user_id, lock=True)
        old_values = snapshot_transaction(transaction)

        transition(transaction, TransactionState.ACTIVE, actor=user_id)
        db.flush()
        apply_transaction_effect(db, transaction)
        record_transaction_event(
            db, transaction, TransactionEventType.RESTORED,
            old_values=old_values, new_values=snapshot_transaction(transaction), actor=user_id
        )
    db.refresh(transaction)

    logger.info("Restored transaction %s by %s", transaction.id, user_id)
    return transaction

def get_transaction(db: Session, transaction_id: str, user_id: str) -> Transaction:
    """Get a single transaction, deleted or not"""
    return _load_transaction(db, transaction_id, user_id)

def list_transactions(db: Session, budget_id: str, user_id: str,
                      filters: Optional[TransactionFilter] = None,
                      limit: int = 100,
                      offset: int = 0) -> List[Transaction]:
    """List transactions in a budget. Soft-deleted rows only with include_deleted."""
    get_budget(db, budget_id, user_id)
    filters = filters or TransactionFilter()

    # Build query
    query = db.query(Transaction).filter(Transaction.budget_id == budget_id)

    if not filters.include_deleted:
        query = query.filter(Transaction.is_deleted.is_(False))
    if filters.start_date:
        query = query.filter(Transaction.transaction_date >= filters.start_date)
    if filters.end_date:
        query = query.filter(Transaction.transaction_date <= filters.end_date)
    if filters.transaction_type:
        query = query.filter(Transaction.transaction_type == filters.transaction_type)
    if filters.envelope_id:
        query = query.filter(or_(
            Transaction.from_envelope_id == filters.envelope_id,
            Transaction.to_envelope_id == filters.envelope_id
        ))
    if filters.payee_id:
        query = query.filter(Transaction.payee_id == filters.payee_id)
    if filters.income_source_id:
        query = query.filter(Transaction.income_source_id == filters.income_source_id)
    if filters.category_id:
        query = query.filter(Transaction.category_id == filters.category_id)
    if filters.is_cleared is not None:
        query = query.filter(Transaction.is_cleared.is_(filters.is_cleared))
    if filters.is_reconciled is not None:
        query = query.filter(Transaction.is_reconciled.is_(filters.is_reconciled))
    if filters.min_amount is not None:
        query = query.filter(Transaction.amount >= filters.min_amount)
    if filters.max_amount is not None:
        query = query.filter(Transaction.amount <= filters.max_amount)

    # Return with pagination, newest first
    return query.order_by(
        Transaction.transaction_date.desc(), Transaction.created_at.desc()
    ).offset(offset).limit(limit).all()

def get_recent_transactions(db: Session, budget_id: str, user_id: str, limit: int = 10) -> List[Transaction]:
    return list_transactions(db, budget_id, user_id, limit=limit)

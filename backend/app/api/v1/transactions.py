from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date
from decimal import Decimal

from backend.app.api.deps import get_current_user_id
from backend.app.database import get_db_session
from backend.app.models.models import TransactionEventType, TransactionType
from backend.app.schemas.transactions import (
    TransactionCreate, TransactionEventResponse, TransactionFilter, TransactionResponse, TransactionUpdate
)
from backend.app.services.audit_service import get_budget_events, get_transaction_events
from backend.app.services.transaction_service import (
    create_transaction,
    get_transaction,
    list_transactions,
    restore_transaction,
    soft_delete_transaction,
    update_transaction
)

# Routes addressed by transaction id
router = APIRouter()

# Routes nested under /budgets/{budget_id}
budget_transactions_router = APIRouter()

@budget_transactions_router.post("/{budget_id}/transactions/", response_model=TransactionResponse, status_code=201)
def create_transaction_endpoint(
    budget_id: str,
    transaction_data: TransactionCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    """
    Create a transaction in a budget.

    - Validates the reference shape for the transaction type
    - Applies the balance effect to the pool and envelopes
    - Records a `created` audit event
    """
    return create_transaction(db, budget_id, transaction_data, user_id)

@budget_transactions_router.get("/{budget_id}/transactions/", response_model=List[TransactionResponse])
def list_transactions_endpoint(
    budget_id: str,
    start_date: Optional[date] = Query(None, description="Transactions on or after this date"),
    end_date: Optional[date] = Query(None, description="Transactions on or before this date"),
    transaction_type: Optional[TransactionType] = Query(None, description="Filter by type"),
    envelope_id: Optional[str] = Query(None, description="Envelope on either side of the transaction"),
    payee_id: Optional[str] = Query(None, description="Filter by payee"),
    income_source_id: Optional[str] = Query(None, description="Filter by income source"),
    category_id: Optional[str] = Query(None, description="Filter by category"),
    is_cleared: Optional[bool] = Query(None),
    is_reconciled: Optional[bool] = Query(None),
    min_amount: Optional[Decimal] = Query(None, ge=0),
    max_amount: Optional[Decimal] = Query(None, ge=0),
    include_deleted: bool = Query(False, description="Include soft-deleted transactions"),
    limit: int = Query(100, le=500, description="Maximum number of transactions to return"),
    offset: int = Query(0, ge=0, description="Number of transactions to skip"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    """
    List transactions, newest first.

    - Soft-deleted transactions are hidden unless include_deleted is set
    """
    filters = TransactionFilter(
        start_date=start_date,
        end_date=end_date,
        transaction_type=transaction_type,
        envelope_id=envelope_id,
        payee_id=payee_id,
        income_source_id=income_source_id,
        category_id=category_id,
        is_cleared=is_cleared,
        is_reconciled=is_reconciled,
        min_amount=min_amount,
        max_amount=max_amount,
        include_deleted=include_deleted
    )
    return list_transactions(db, budget_id, user_id, filters, limit, offset)

@budget_transactions_router.get("/{budget_id}/transaction-events/", response_model=List[TransactionEventResponse])
def list_budget_events_endpoint(
    budget_id: str,
    event_type: Optional[TransactionEventType] = Query(None, description="Filter by event type"),
    limit: int = Query(100, le=500),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    """Audit trail for every transaction in a budget, newest first"""
    return get_budget_events(db, budget_id, user_id, event_type, limit, offset)

@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction_endpoint(
    transaction_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    return get_transaction(db, transaction_id, user_id)

@router.patch("/{transaction_id}", response_model=TransactionResponse)
def update_transaction_endpoint(
    transaction_id: str,
    transaction_update: TransactionUpdate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    """
    Update a transaction.

    - Reverses the old balance effect and applies the new one atomically
    - Fails with 409 if the transaction is deleted
    """
    return update_transaction(db, transaction_id, transaction_update, user_id)

@router.delete("/{transaction_id}", response_model=TransactionResponse)
def delete_transaction_endpoint(
    transaction_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    """
    Soft delete a transaction.

    - Reverses its balance effect
    - Fails with 409 if already deleted
    """
    return soft_delete_transaction(db, transaction_id, user_id)

@router.post("/{transaction_id}/restore", response_model=TransactionResponse)
def restore_transaction_endpoint(
    transaction_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    """
    Restore a soft-deleted transaction.

    - Re-applies its balance effect
    - Fails with 409 if the transaction is active
    """
    return restore_transaction(db, transaction_id, user_id)

@router.get("/{transaction_id}/events", response_model=List[TransactionEventResponse])
def get_transaction_events_endpoint(
    transaction_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    """Audit history of a transaction, oldest first"""
    return get_transaction_events(db, transaction_id, user_id)

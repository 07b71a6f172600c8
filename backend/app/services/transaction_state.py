"""
Soft-delete lifecycle of a transaction.

A transaction is either ACTIVE or DELETED. All guards on that lifecycle live
here so callers never inspect is_deleted directly.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from backend.app.errors import ConflictError
from backend.app.models.models import Transaction, utcnow


class TransactionState(str, Enum):
    ACTIVE = "active"
    DELETED = "deleted"


# target state -> state it may be entered from
ALLOWED_TRANSITIONS = {
    TransactionState.DELETED: TransactionState.ACTIVE,
    TransactionState.ACTIVE: TransactionState.DELETED,
}

_CONFLICT_MESSAGES = {
    TransactionState.DELETED: "Transaction {id} is already deleted",
    TransactionState.ACTIVE: "Transaction {id} is not deleted",
}


def state_of(transaction: Transaction) -> TransactionState:
    return TransactionState.DELETED if transaction.is_deleted else TransactionState.ACTIVE


def require_state(transaction: Transaction, expected: TransactionState, action: str) -> None:
    """Raise ConflictError unless the transaction is in the expected state"""
    current = state_of(transaction)
    if current != expected:
        raise ConflictError(
            f"Cannot {action} transaction {transaction.id} while it is {current.value}",
            entity_id=transaction.id
        )


def transition(
    transaction: Transaction,
    target: TransactionState,
    actor: Optional[str],
    now: Optional[datetime] = None
) -> TransactionState:
    """
    Move a transaction to the target state and return the previous state.

    Only the soft-delete fields change here; balance effects are the
    caller's job and must run in the same unit of work.
    """
    current = state_of(transaction)
    if ALLOWED_TRANSITIONS[target] != current:
        raise ConflictError(_CONFLICT_MESSAGES[target].format(id=transaction.id), entity_id=transaction.id)

    if target == TransactionState.DELETED:
        transaction.is_deleted = True
        transaction.deleted_at = now or utcnow()
        transaction.deleted_by = actor
    else:
        transaction.is_deleted = False
        transaction.deleted_at = None
        transaction.deleted_by = None
    return current

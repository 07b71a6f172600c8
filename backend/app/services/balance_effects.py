"""
Balance effects of ledger transactions.

Each transaction type moves money between the budget's available pool and
its envelopes according to a fixed table:

    type           pool    from envelope   to envelope
    income         +amt    -               -
    allocation     -amt    -               +amt
    expense        -       -amt            -
    debt_payment   -       -amt            -
    transfer       -       -amt            +amt

compute_balance_effect() is pure and works on anything exposing
transaction_type and amount. apply_balance_effect() writes the deltas and is
the only code path that changes Budget.available_amount or
Envelope.current_balance.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from backend.app.errors import NotFoundError, ValidationError
from backend.app.models.models import Budget, Envelope, TransactionType

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

# (pool sign, from-envelope sign, to-envelope sign) per transaction type
EFFECT_TABLE = {
    TransactionType.INCOME: (1, 0, 0),
    TransactionType.ALLOCATION: (-1, 0, 1),
    TransactionType.EXPENSE: (0, -1, 0),
    TransactionType.DEBT_PAYMENT: (0, -1, 0),
    TransactionType.TRANSFER: (0, -1, 1),
}


@dataclass(frozen=True)
class BalanceEffect:
    budget_delta: Decimal = ZERO
    from_envelope_delta: Decimal = ZERO
    to_envelope_delta: Decimal = ZERO

    def inverse(self) -> "BalanceEffect":
        return BalanceEffect(
            budget_delta=-self.budget_delta,
            from_envelope_delta=-self.from_envelope_delta,
            to_envelope_delta=-self.to_envelope_delta,
        )

    @property
    def is_empty(self) -> bool:
        return not (self.budget_delta or self.from_envelope_delta or self.to_envelope_delta)


def _transaction_type(value) -> TransactionType:
    try:
        return TransactionType(value)
    except ValueError:
        raise ValidationError(f"Unknown transaction type: {value}", field="transaction_type")


def compute_balance_effect(transaction) -> BalanceEffect:
    """Forward effect of a transaction, before any soft-delete consideration"""
    pool_sign, from_sign, to_sign = EFFECT_TABLE[_transaction_type(transaction.transaction_type)]
    amount = Decimal(transaction.amount)
    return BalanceEffect(
        budget_delta=amount * pool_sign,
        from_envelope_delta=amount * from_sign,
        to_envelope_delta=amount * to_sign,
    )


def signed_envelope_effect(transaction, envelope_id: str) -> Decimal:
    """Signed contribution of one transaction to one envelope's balance"""
    effect = compute_balance_effect(transaction)
    total = ZERO
    if transaction.from_envelope_id == envelope_id:
        total += effect.from_envelope_delta
    if transaction.to_envelope_id == envelope_id:
        total += effect.to_envelope_delta
    return total


def _increment(db: Session, model, row_id: str, column, delta: Decimal) -> None:
    # Atomic in-database increment, no read-modify-write in Python
    result = db.execute(
        update(model)
        .where(model.id == row_id)
        .values({column: getattr(model, column) + delta})
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount != 1:
        raise NotFoundError(model.__name__, row_id)


def lock_balance_rows(db: Session, budget_id: str, envelope_ids) -> None:
    """
    Take row locks on the budget and envelopes a balance effect will touch.

    Locks are always taken budget first, then envelopes sorted by id, so two
    writers touching overlapping rows cannot deadlock. Backends without
    SELECT ... FOR UPDATE (SQLite) ignore the clause and serialize writers
    on the database lock instead.
    """
    db.query(Budget.id).filter(Budget.id == budget_id).with_for_update().all()
    for envelope_id in sorted(set(e for e in envelope_ids if e)):
        db.query(Envelope.id).filter(Envelope.id == envelope_id).with_for_update().all()


def apply_balance_effect(
    db: Session,
    budget_id: str,
    from_envelope_id: Optional[str],
    to_envelope_id: Optional[str],
    effect: BalanceEffect
) -> None:
    """Apply an effect inside the caller's unit of work. Never commits."""
    if effect.is_empty:
        return

    lock_balance_rows(db, budget_id, [from_envelope_id, to_envelope_id])

    if effect.budget_delta:
        _increment(db, Budget, budget_id, "available_amount", effect.budget_delta)
    if effect.from_envelope_delta:
        if not from_envelope_id:
            raise ValidationError("Effect requires a source envelope", field="from_envelope_id")
        _increment(db, Envelope, from_envelope_id, "current_balance", effect.from_envelope_delta)
    if effect.to_envelope_delta:
        if not to_envelope_id:
            raise ValidationError("Effect requires a destination envelope", field="to_envelope_id")
        _increment(db, Envelope, to_envelope_id, "current_balance", effect.to_envelope_delta)

    logger.debug(
        "Applied balance effect budget=%s pool=%s from=%s:%s to=%s:%s",
        budget_id, effect.budget_delta, from_envelope_id, effect.from_envelope_delta,
        to_envelope_id, effect.to_envelope_delta
    )


def apply_transaction_effect(db: Session, transaction, reverse: bool = False) -> BalanceEffect:
    """Apply (or reverse) the effect of a transaction-like object on its own references"""
    effect = compute_balance_effect(transaction)
    if reverse:
        effect = effect.inverse()
    apply_balance_effect(db, transaction.budget_id, transaction.from_envelope_id, transaction.to_envelope_id, effect)
    return effect

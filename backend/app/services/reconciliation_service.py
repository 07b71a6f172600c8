"""
Reconcile cached balances against the active transaction history.

The pool and envelope balances are maintained incrementally; these
functions recompute them from scratch to detect drift, and optionally
correct it through the balance-effect applier.
"""
import logging
from decimal import Decimal
from typing import Dict, List, Tuple

from sqlalchemy.orm import Session

from backend.app.database import unit_of_work
from backend.app.models.models import Budget, Envelope, Transaction, TransactionType
from backend.app.schemas.budgets import BalanceDrift, ReconciliationReport
from backend.app.services.balance_effects import (
    ZERO, BalanceEffect, apply_balance_effect, compute_balance_effect, lock_balance_rows
)
from backend.app.services.budget_service import get_budget

logger = logging.getLogger(__name__)

def _active_transactions(db: Session, budget_id: str) -> List[Transaction]:
    return db.query(Transaction).filter(
        Transaction.budget_id == budget_id,
        Transaction.is_deleted.is_(False)
    ).populate_existing().all()

def compute_balances(db: Session, budget_id: str) -> Tuple[Decimal, Dict[str, Decimal]]:
    """
    Recompute the pool and every envelope balance from active transactions.

    Returns (available_amount, {envelope_id: balance}); envelopes without
    any transaction are included at zero.
    """
    pool = ZERO
    balances = {
        envelope_id: ZERO
        for (envelope_id,) in db.query(Envelope.id).filter(Envelope.budget_id == budget_id).all()
    }

    for transaction in _active_transactions(db, budget_id):
        effect = compute_balance_effect(transaction)
        pool += effect.budget_delta
        if transaction.from_envelope_id:
            balances[transaction.from_envelope_id] = balances.get(transaction.from_envelope_id, ZERO) + effect.from_envelope_delta
        if transaction.to_envelope_id:
            balances[transaction.to_envelope_id] = balances.get(transaction.to_envelope_id, ZERO) + effect.to_envelope_delta

    return pool, balances

def _find_drifts(db: Session, budget: Budget) -> List[BalanceDrift]:
    computed_pool, computed_balances = compute_balances(db, budget.id)
    drifts = []

    cached_pool = Decimal(budget.available_amount)
    if cached_pool != computed_pool:
        drifts.append(BalanceDrift(
            entity="Budget",
            entity_id=budget.id,
            name=budget.name,
            cached_balance=cached_pool,
            computed_balance=computed_pool,
            drift=cached_pool - computed_pool,
        ))

    # Session copies may predate the row locks, read the stored balances
    envelopes = db.query(Envelope).filter(
        Envelope.budget_id == budget.id
    ).order_by(Envelope.name).populate_existing().all()
    for envelope in envelopes:
        cached = Decimal(envelope.current_balance)
        computed = computed_balances.get(envelope.id, ZERO)
        if cached != computed:
            drifts.append(BalanceDrift(
                entity="Envelope",
                entity_id=envelope.id,
                name=envelope.name,
                cached_balance=cached,
                computed_balance=computed,
                drift=cached - computed,
            ))
    return drifts

def reconcile_budget(db: Session, budget_id: str, user_id: str) -> ReconciliationReport:
    """Compare cached balances with recomputed ones. Read only."""
    budget = get_budget(db, budget_id, user_id)
    drifts = _find_drifts(db, budget)
    envelope_count = db.query(Envelope).filter(Envelope.budget_id == budget_id).count()

    for drift in drifts:
        logger.warning(
            "Balance drift on %s %s: cached=%s computed=%s",
            drift.entity, drift.entity_id, drift.cached_balance, drift.computed_balance
        )

    return ReconciliationReport(
        budget_id=budget_id,
        is_balanced=not drifts,
        checked_envelopes=envelope_count,
        drifts=drifts,
    )

def rebuild_budget_balances(db: Session, budget_id: str, user_id: str) -> ReconciliationReport:
    """
    Administrative repair: correct every drifted balance.

    Corrections go through apply_balance_effect as deltas, so the cached
    columns keep a single writer. Returns the drifts that were corrected.
    """
    budget = get_budget(db, budget_id, user_id)
    envelope_ids = [envelope_id for (envelope_id,) in db.query(Envelope.id).filter(Envelope.budget_id == budget_id).all()]

    with unit_of_work(db):
        lock_balance_rows(db, budget_id, envelope_ids)
        db.refresh(budget)
        drifts = _find_drifts(db, budget)

        for drift in drifts:
            correction = -drift.drift
            if drift.entity == "Budget":
                apply_balance_effect(db, budget_id, None, None, BalanceEffect(budget_delta=correction))
            else:
                apply_balance_effect(db, budget_id, None, drift.entity_id, BalanceEffect(to_envelope_delta=correction))
            logger.warning(
                "Corrected %s %s balance by %s (was %s, now %s)",
                drift.entity, drift.entity_id, correction, drift.cached_balance, drift.computed_balance
            )

    return ReconciliationReport(
        budget_id=budget_id,
        is_balanced=True,
        checked_envelopes=len(envelope_ids),
        drifts=drifts,
    )

def income_minus_spending(db: Session, budget_id: str) -> Decimal:
    """Right-hand side of the zero-sum check: active income minus active spending"""
    total = ZERO
    for transaction in _active_transactions(db, budget_id):
        if transaction.transaction_type == TransactionType.INCOME:
            total += transaction.amount
        elif transaction.transaction_type in (TransactionType.EXPENSE, TransactionType.DEBT_PAYMENT):
            total -= transaction.amount
    return total

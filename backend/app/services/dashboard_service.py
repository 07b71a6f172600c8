from sqlalchemy.orm import Session
from sqlalchemy import func
from typing import List, Optional
from datetime import date
from decimal import Decimal

from backend.app.errors import ValidationError
from backend.app.models.models import Envelope, Payee, Transaction, TransactionType
from backend.app.schemas.budgets import BudgetOverview, EnvelopeInDB, MonthlySummary, SpendingTotal
from backend.app.services.balance_effects import ZERO
from backend.app.services.budget_service import get_budget
from backend.app.services.reconciliation_service import income_minus_spending

SPENDING_TYPES = (TransactionType.EXPENSE, TransactionType.DEBT_PAYMENT)

def get_negative_envelopes(db: Session, budget_id: str, user_id: str) -> List[Envelope]:
    """Envelopes that have been overspent"""
    get_budget(db, budget_id, user_id)
    return db.query(Envelope).filter(
        Envelope.budget_id == budget_id,
        Envelope.current_balance < 0
    ).order_by(Envelope.current_balance.asc()).all()

def get_budget_overview(db: Session, budget_id: str, user_id: str) -> BudgetOverview:
    """
    Dashboard totals for a budget.

    Uses cached balances for the pool and envelopes and active transactions
    for income and spending totals, so available_amount +
    total_envelope_balance == total_income - total_spent when the ledger
    is consistent.
    """
    budget = get_budget(db, budget_id, user_id)

    envelopes = db.query(Envelope).filter(Envelope.budget_id == budget_id).all()
    total_envelope_balance = sum((Decimal(envelope.current_balance) for envelope in envelopes), ZERO)
    negative = [envelope for envelope in envelopes if envelope.current_balance < 0]

    total_income = _sum_amounts(db, budget_id, (TransactionType.INCOME,))
    total_spent = _sum_amounts(db, budget_id, SPENDING_TYPES)

    return BudgetOverview(
        budget_id=budget_id,
        available_amount=budget.available_amount,
        total_envelope_balance=total_envelope_balance,
        envelope_count=len(envelopes),
        negative_envelope_count=len(negative),
        negative_envelopes=[EnvelopeInDB.model_validate(envelope) for envelope in negative],
        total_income=total_income,
        total_spent=total_spent,
    )

def _sum_amounts(db: Session, budget_id: str, transaction_types, start_date: Optional[date] = None,
                 end_date: Optional[date] = None) -> Decimal:
    query = db.query(func.coalesce(func.sum(Transaction.amount), 0)).filter(
        Transaction.budget_id == budget_id,
        Transaction.is_deleted.is_(False),
        Transaction.transaction_type.in_(transaction_types)
    )
    if start_date:
        query = query.filter(Transaction.transaction_date >= start_date)
    if end_date:
        query = query.filter(Transaction.transaction_date < end_date)
    return Decimal(str(query.scalar())).quantize(Decimal("0.01"))

def calculate_monthly_summary(db: Session, budget_id: str, user_id: str, year: int, month: int) -> MonthlySummary:
    """
    Money flow for one calendar month, active transactions only

    Args:
        db: Database session
        budget_id: The budget to summarize
        user_id: Caller, must own the budget
        year: The year to calculate for
        month: The month to calculate for (1-12)
    """
    get_budget(db, budget_id, user_id)
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month: {month}", field="month")
    # The month after must still be a valid date
    if not 1 <= year <= 9998:
        raise ValidationError(f"Invalid year: {year}", field="year")

    # Calculate start and end dates for the month
    start_date = date(year, month, 1)
    if month == 12:
        end_date = date(year + 1, 1, 1)
    else:
        end_date = date(year, month + 1, 1)

    def total(*types):
        return _sum_amounts(db, budget_id, types, start_date, end_date)

    income = total(TransactionType.INCOME)
    expenses = total(TransactionType.EXPENSE)
    debt_payments = total(TransactionType.DEBT_PAYMENT)

    return MonthlySummary(
        budget_id=budget_id,
        year=year,
        month=month,
        income=income,
        allocations=total(TransactionType.ALLOCATION),
        expenses=expenses,
        debt_payments=debt_payments,
        transfers=total(TransactionType.TRANSFER),
        net_flow=income - expenses - debt_payments,
    )

def get_spending_by_envelope(db: Session, budget_id: str, user_id: str,
                             start_date: Optional[date] = None,
                             end_date: Optional[date] = None) -> List[SpendingTotal]:
    """Expense and debt payment totals per source envelope, largest first"""
    get_budget(db, budget_id, user_id)
    query = db.query(
        Envelope.id, Envelope.name, func.sum(Transaction.amount), func.count(Transaction.id)
    ).join(Transaction, Transaction.from_envelope_id == Envelope.id)
    return _spending_rows(query, budget_id, start_date, end_date, Envelope)

def get_spending_by_payee(db: Session, budget_id: str, user_id: str,
                          start_date: Optional[date] = None,
                          end_date: Optional[date] = None) -> List[SpendingTotal]:
    """Expense and debt payment totals per payee, largest first"""
    get_budget(db, budget_id, user_id)
    query = db.query(
        Payee.id, Payee.name, func.sum(Transaction.amount), func.count(Transaction.id)
    ).join(Transaction, Transaction.payee_id == Payee.id)
    return _spending_rows(query, budget_id, start_date, end_date, Payee)

def _spending_rows(query, budget_id, start_date, end_date, model) -> List[SpendingTotal]:
    query = query.filter(
        Transaction.budget_id == budget_id,
        Transaction.is_deleted.is_(False),
        Transaction.transaction_type.in_(SPENDING_TYPES)
    )
    if start_date:
        query = query.filter(Transaction.transaction_date >= start_date)
    if end_date:
        query = query.filter(Transaction.transaction_date <= end_date)

    rows = query.group_by(model.id, model.name).all()
    totals = [
        SpendingTotal(
            id=row_id,
            name=name,
            total_spent=Decimal(str(total)).quantize(Decimal("0.01")),
            transaction_count=count
        )
        for row_id, name, total, count in rows
    ]
    totals.sort(key=lambda item: item.total_spent, reverse=True)
    return totals

def check_zero_sum(db: Session, budget_id: str, user_id: str) -> bool:
    """available + sum(envelope balances) == active income - active spending"""
    overview = get_budget_overview(db, budget_id, user_id)
    return overview.available_amount + overview.total_envelope_balance == income_minus_spending(db, budget_id)

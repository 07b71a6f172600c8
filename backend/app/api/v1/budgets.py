from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from backend.app.api.deps import get_current_user_id
from backend.app.database import get_db_session
from backend.app.schemas.budgets import (
    BudgetCreate, BudgetInDB, BudgetOverview, CategoryCreate, CategoryInDB, EnvelopeCreate, EnvelopeInDB,
    IncomeSourceCreate, IncomeSourceInDB, MonthlySummary, PayeeCreate, PayeeInDB, ReconciliationReport,
    SpendingTotal
)
from backend.app.services.budget_service import (
    create_budget, get_budget, list_budgets,
    create_envelope, list_envelopes,
    create_payee, list_payees,
    create_income_source, list_income_sources,
    create_category, list_categories
)
from backend.app.services.dashboard_service import (
    get_budget_overview, calculate_monthly_summary, get_spending_by_envelope, get_spending_by_payee
)
from backend.app.services.reconciliation_service import reconcile_budget, rebuild_budget_balances

router = APIRouter()

@router.post("/", response_model=BudgetInDB, status_code=201)
def create_budget_endpoint(
    budget_data: BudgetCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    """
    Create a new, empty budget owned by the caller
    """
    return create_budget(db, budget_data, user_id)

@router.get("/", response_model=List[BudgetInDB])
def list_budgets_endpoint(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    return list_budgets(db, user_id)

@router.get("/{budget_id}", response_model=BudgetInDB)
def get_budget_endpoint(
    budget_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    return get_budget(db, budget_id, user_id)

# --- Reports ---

@router.get("/{budget_id}/overview", response_model=BudgetOverview)
def get_overview_endpoint(
    budget_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    """
    Dashboard totals.

    - Available pool and total envelope balance
    - Overspent envelopes
    - Active income and spending totals
    """
    return get_budget_overview(db, budget_id, user_id)

@router.get("/{budget_id}/monthly-summary", response_model=MonthlySummary)
def get_monthly_summary_endpoint(
    budget_id: str,
    year: int = Query(..., ge=1, le=9998, description="Year (YYYY)"),
    month: int = Query(..., ge=1, le=12, description="Month (1-12)"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    return calculate_monthly_summary(db, budget_id, user_id, year, month)

@router.get("/{budget_id}/spending/by-envelope", response_model=List[SpendingTotal])
def get_spending_by_envelope_endpoint(
    budget_id: str,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    return get_spending_by_envelope(db, budget_id, user_id, start_date, end_date)

@router.get("/{budget_id}/spending/by-payee", response_model=List[SpendingTotal])
def get_spending_by_payee_endpoint(
    budget_id: str,
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    return get_spending_by_payee(db, budget_id, user_id, start_date, end_date)

@router.get("/{budget_id}/reconciliation", response_model=ReconciliationReport)
def reconcile_endpoint(
    budget_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    """
    Compare cached balances against the active transaction history
    """
    return reconcile_budget(db, budget_id, user_id)

@router.post("/{budget_id}/reconciliation/rebuild", response_model=ReconciliationReport)
def rebuild_endpoint(
    budget_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    """
    Correct drifted balances. Returns the drifts that were fixed.
    """
    return rebuild_budget_balances(db, budget_id, user_id)

# --- Entities ---

@router.post("/{budget_id}/envelopes/", response_model=EnvelopeInDB, status_code=201)
def create_envelope_endpoint(
    budget_id: str,
    envelope_data: EnvelopeCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    return create_envelope(db, budget_id, envelope_data, user_id)

@router.get("/{budget_id}/envelopes/", response_model=List[EnvelopeInDB])
def list_envelopes_endpoint(
    budget_id: str,
    include_inactive: bool = Query(False),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    return list_envelopes(db, budget_id, user_id, include_inactive)

@router.post("/{budget_id}/payees/", response_model=PayeeInDB, status_code=201)
def create_payee_endpoint(
    budget_id: str,
    payee_data: PayeeCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    return create_payee(db, budget_id, payee_data, user_id)

@router.get("/{budget_id}/payees/", response_model=List[PayeeInDB])
def list_payees_endpoint(
    budget_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    return list_payees(db, budget_id, user_id)

@router.post("/{budget_id}/income-sources/", response_model=IncomeSourceInDB, status_code=201)
def create_income_source_endpoint(
    budget_id: str,
    source_data: IncomeSourceCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    return create_income_source(db, budget_id, source_data, user_id)

@router.get("/{budget_id}/income-sources/", response_model=List[IncomeSourceInDB])
def list_income_sources_endpoint(
    budget_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    return list_income_sources(db, budget_id, user_id)

@router.post("/{budget_id}/categories/", response_model=CategoryInDB, status_code=201)
def create_category_endpoint(
    budget_id: str,
    category_data: CategoryCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    return create_category(db, budget_id, category_data, user_id)

@router.get("/{budget_id}/categories/", response_model=List[CategoryInDB])
def list_categories_endpoint(
    budget_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db_session)
):
    return list_categories(db, budget_id, user_id)

"""
Entity store for budgets and the things transactions reference.

Plain CRUD. Balance columns are never written here; they belong to the
balance-effect applier in balance_effects.py.
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from backend.app.config import get_settings
from backend.app.database import unit_of_work
from backend.app.errors import ConflictError, NotFoundError, ValidationError
from backend.app.models.models import Budget, Category, Envelope, IncomeSource, Payee
from backend.app.schemas.budgets import (
    BudgetCreate, CategoryCreate, EnvelopeCreate, EnvelopeUpdate, IncomeSourceCreate, PayeeCreate
)

logger = logging.getLogger(__name__)

# Columns an envelope PATCH may change but never clear
ENVELOPE_REQUIRED_FIELDS = ("name", "envelope_type", "is_active", "display_order")

def create_budget(db: Session, budget_data: BudgetCreate, user_id: str) -> Budget:
    """Create an empty budget: zero pool, no envelopes"""
    budget = Budget(
        user_id=user_id,
        name=budget_data.name,
        description=budget_data.description,
        currency_code=budget_data.currency_code or get_settings().default_currency,
        available_amount=0,
    )
    with unit_of_work(db):
        db.add(budget)
    db.refresh(budget)

    logger.info("Created budget %s for user %s", budget.id, user_id)
    return budget

def get_budget(db: Session, budget_id: str, user_id: str) -> Budget:
    """Get a budget the user may access; anything else is reported as missing"""
    budget = db.query(Budget).filter(Budget.id == budget_id, Budget.user_id == user_id).first()
    if not budget:
        raise NotFoundError("Budget", budget_id)
    return budget

def list_budgets(db: Session, user_id: str) -> List[Budget]:
    return db.query(Budget).filter(Budget.user_id == user_id).order_by(Budget.created_at).all()

def _ensure_unique_name(db: Session, model, budget_id: str, name: str, exclude_id: Optional[str] = None):
    query = db.query(model).filter(model.budget_id == budget_id, model.name == name)
    if exclude_id:
        query = query.filter(model.id != exclude_id)
    if query.first():
        raise ConflictError(f"{model.__name__} named '{name}' already exists in this budget")

def _get_category_in_budget(db: Session, budget_id: str, category_id: str) -> Category:
    category = db.query(Category).filter(Category.id == category_id, Category.budget_id == budget_id).first()
    if not category:
        raise NotFoundError("Category", category_id)
    return category

# --- Envelopes ---

def create_envelope(db: Session, budget_id: str, envelope_data: EnvelopeCreate, user_id: str) -> Envelope:
    """Create an envelope with a zero balance"""
    get_budget(db, budget_id, user_id)
    _ensure_unique_name(db, Envelope, budget_id, envelope_data.name)
    if envelope_data.category_id:
        _get_category_in_budget(db, budget_id, envelope_data.category_id)

    envelope = Envelope(
        budget_id=budget_id,
        category_id=envelope_data.category_id,
        name=envelope_data.name,
        description=envelope_data.description,
        envelope_type=envelope_data.envelope_type,
        target_amount=envelope_data.target_amount,
        display_order=envelope_data.display_order,
        current_balance=0,
    )
    with unit_of_work(db):
        db.add(envelope)
    db.refresh(envelope)
    return envelope

def get_envelope(db: Session, envelope_id: str, user_id: str) -> Envelope:
    envelope = db.query(Envelope).filter(Envelope.id == envelope_id).first()
    if not envelope:
        raise NotFoundError("Envelope", envelope_id)
    get_budget(db, envelope.budget_id, user_id)
    return envelope

def list_envelopes(db: Session, budget_id: str, user_id: str, include_inactive: bool = False) -> List[Envelope]:
    get_budget(db, budget_id, user_id)
    query = db.query(Envelope).filter(Envelope.budget_id == budget_id)
    if not include_inactive:
        query = query.filter(Envelope.is_active.is_(True))
    return query.order_by(Envelope.display_order, Envelope.name).all()

def update_envelope(db: Session, envelope_id: str, envelope_update: EnvelopeUpdate, user_id: str) -> Envelope:
    """Update descriptive fields of an envelope. The balance is not updatable."""
    envelope = get_envelope(db, envelope_id, user_id)
    changes = envelope_update.model_dump(exclude_unset=True)

    for field in ENVELOPE_REQUIRED_FIELDS:
        if field in changes and changes[field] is None:
            raise ValidationError(f"{field} cannot be null", field=field)

    if changes.get("name") and changes["name"] != envelope.name:
        _ensure_unique_name(db, Envelope, envelope.budget_id, changes["name"], exclude_id=envelope.id)
    if changes.get("category_id"):
        _get_category_in_budget(db, envelope.budget_id, changes["category_id"])

    with unit_of_work(db):
        for field, value in changes.items():
            setattr(envelope, field, value)
    db.refresh(envelope)
    return envelope

# --- Payees ---

def create_payee(db: Session, budget_id: str, payee_data: PayeeCreate, user_id: str) -> Payee:
    get_budget(db, budget_id, user_id)
    _ensure_unique_name(db, Payee, budget_id, payee_data.name)

    payee = Payee(budget_id=budget_id, name=payee_data.name, description=payee_data.description)
    with unit_of_work(db):
        db.add(payee)
    db.refresh(payee)
    return payee

def list_payees(db: Session, budget_id: str, user_id: str) -> List[Payee]:
    get_budget(db, budget_id, user_id)
    return db.query(Payee).filter(Payee.budget_id == budget_id).order_by(Payee.name).all()

# --- Income sources ---

def create_income_source(db: Session, budget_id: str, source_data: IncomeSourceCreate, user_id: str) -> IncomeSource:
    get_budget(db, budget_id, user_id)
    _ensure_unique_name(db, IncomeSource, budget_id, source_data.name)

    income_source = IncomeSource(
        budget_id=budget_id,
        name=source_data.name,
        description=source_data.description,
        expected_amount=source_data.expected_amount,
    )
    with unit_of_work(db):
        db.add(income_source)
    db.refresh(income_source)
    return income_source

def list_income_sources(db: Session, budget_id: str, user_id: str) -> List[IncomeSource]:
    get_budget(db, budget_id, user_id)
    return db.query(IncomeSource).filter(IncomeSource.budget_id == budget_id).order_by(IncomeSource.name).all()

# --- Categories ---

def create_category(db: Session, budget_id: str, category_data: CategoryCreate, user_id: str) -> Category:
    get_budget(db, budget_id, user_id)
    _ensure_unique_name(db, Category, budget_id, category_data.name)

    category = Category(
        budget_id=budget_id,
        name=category_data.name,
        description=category_data.description,
        is_income=category_data.is_income,
        display_order=category_data.display_order,
    )
    with unit_of_work(db):
        db.add(category)
    db.refresh(category)
    return category

def list_categories(db: Session, budget_id: str, user_id: str) -> List[Category]:
    get_budget(db, budget_id, user_id)
    return db.query(Category).filter(Category.budget_id == budget_id).order_by(Category.display_order, Category.name).all()

from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field

from backend.app.models.models import EnvelopeType

class BudgetCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    currency_code: Optional[str] = Field(None, min_length=3, max_length=3)

class BudgetInDB(BaseModel):
    id: str
    user_id: str
    name: str
    description: Optional[str] = None
    currency_code: str
    available_amount: Decimal
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True

class BudgetOverview(BaseModel):
    budget_id: str
    available_amount: Decimal
    total_envelope_balance: Decimal
    envelope_count: int
    negative_envelope_count: int
    negative_envelopes: List["EnvelopeInDB"]
    total_income: Decimal
    total_spent: Decimal

class MonthlySummary(BaseModel):
    budget_id: str
    year: int
    month: int
    income: Decimal
    allocations: Decimal
    expenses: Decimal
    debt_payments: Decimal
    transfers: Decimal
    net_flow: Decimal

class SpendingTotal(BaseModel):
    id: str
    name: str
    total_spent: Decimal
    transaction_count: int

class BalanceDrift(BaseModel):
    entity: str
    entity_id: str
    name: Optional[str] = None
    cached_balance: Decimal
    computed_balance: Decimal
    drift: Decimal

class ReconciliationReport(BaseModel):
    budget_id: str
    is_balanced: bool
    checked_envelopes: int
    drifts: List[BalanceDrift]

# --- Entity store ---

class EnvelopeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    envelope_type: EnvelopeType = EnvelopeType.REGULAR
    category_id: Optional[str] = None
    target_amount: Optional[Decimal] = Field(None, ge=0)
    display_order: int = 0

class EnvelopeUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    envelope_type: Optional[EnvelopeType] = None
    category_id: Optional[str] = None
    target_amount: Optional[Decimal] = Field(None, ge=0)
    is_active: Optional[bool] = None
    display_order: Optional[int] = None

class EnvelopeInDB(BaseModel):
    id: str
    budget_id: str
    category_id: Optional[str] = None
    name: str
    description: Optional[str] = None
    envelope_type: EnvelopeType
    current_balance: Decimal
    target_amount: Optional[Decimal] = None
    is_active: bool
    display_order: int

    class Config:
        from_attributes = True

class PayeeCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None

class PayeeInDB(BaseModel):
    id: str
    budget_id: str
    name: str
    description: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True

class IncomeSourceCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    expected_amount: Optional[Decimal] = Field(None, ge=0)

class IncomeSourceInDB(BaseModel):
    id: str
    budget_id: str
    name: str
    description: Optional[str] = None
    expected_amount: Optional[Decimal] = None
    is_active: bool

    class Config:
        from_attributes = True

class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    is_income: bool = False
    display_order: int = 0

class CategoryInDB(BaseModel):
    id: str
    budget_id: str
    name: str
    description: Optional[str] = None
    is_income: bool
    display_order: int

    class Config:
        from_attributes = True

BudgetOverview.model_rebuild()

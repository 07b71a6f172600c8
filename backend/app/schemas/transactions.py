from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime, date
from decimal import Decimal

from backend.app.models.models import TransactionType, TransactionEventType

class TransactionCreate(BaseModel):
    transaction_type: TransactionType
    amount: Decimal
    transaction_date: date
    description: Optional[str] = None
    notes: Optional[str] = None
    from_envelope_id: Optional[str] = None
    to_envelope_id: Optional[str] = None
    income_source_id: Optional[str] = None
    payee_id: Optional[str] = None
    category_id: Optional[str] = None
    is_cleared: bool = False
    is_reconciled: bool = False

class TransactionUpdate(BaseModel):
    """Partial update. Unset fields keep their value, explicit nulls clear references."""
    transaction_type: Optional[TransactionType] = None
    amount: Optional[Decimal] = None
    transaction_date: Optional[date] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    from_envelope_id: Optional[str] = None
    to_envelope_id: Optional[str] = None
    income_source_id: Optional[str] = None
    payee_id: Optional[str] = None
    category_id: Optional[str] = None
    is_cleared: Optional[bool] = None
    is_reconciled: Optional[bool] = None

class TransactionResponse(BaseModel):
    id: str
    budget_id: str
    transaction_type: TransactionType
    amount: Decimal
    transaction_date: date
    description: Optional[str] = None
    notes: Optional[str] = None
    from_envelope_id: Optional[str] = None
    to_envelope_id: Optional[str] = None
    income_source_id: Optional[str] = None
    payee_id: Optional[str] = None
    category_id: Optional[str] = None
    is_cleared: bool
    is_reconciled: bool
    is_deleted: bool
    deleted_at: Optional[datetime] = None
    deleted_by: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class TransactionFilter(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    transaction_type: Optional[TransactionType] = None
    envelope_id: Optional[str] = None
    payee_id: Optional[str] = None
    income_source_id: Optional[str] = None
    category_id: Optional[str] = None
    is_cleared: Optional[bool] = None
    is_reconciled: Optional[bool] = None
    min_amount: Optional[Decimal] = Field(None, ge=0)
    max_amount: Optional[Decimal] = Field(None, ge=0)
    include_deleted: bool = False

class TransactionEventResponse(BaseModel):
    id: str
    transaction_id: str
    budget_id: str
    event_type: TransactionEventType
    event_description: Optional[str] = None
    changed_fields: List[str]
    old_values: Optional[Dict[str, Any]] = None
    new_values: Dict[str, Any]
    performed_by: Optional[str] = None
    performed_at: datetime

    class Config:
        from_attributes = True

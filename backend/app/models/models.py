from uuid import uuid4
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Column, String, Integer, DateTime, Numeric, Boolean, ForeignKey, Enum as PgEnum, JSON, Date, Text,
    UniqueConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

def utcnow():
    return datetime.now(timezone.utc)

def _enum_values(enum_cls):
    # Persist the lowercase values, not the member names
    return [member.value for member in enum_cls]

MONEY = Numeric(12, 2)

# --- ENUMS ---

class TransactionType(str, Enum):
    INCOME = "income"
    ALLOCATION = "allocation"
    EXPENSE = "expense"
    DEBT_PAYMENT = "debt_payment"
    TRANSFER = "transfer"

class EnvelopeType(str, Enum):
    REGULAR = "regular"
    SAVINGS = "savings"
    DEBT = "debt"

class TransactionEventType(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    RESTORED = "restored"

# --- SQLALCHEMY MODELS ---

class Budget(Base):
    __tablename__ = "budgets"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    currency_code = Column(String(3), nullable=False, default="USD")
    # Unallocated pool, written only by the balance-effect applier
    available_amount = Column(MONEY, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    envelopes = relationship("Envelope", back_populates="budget")
    payees = relationship("Payee", back_populates="budget")
    income_sources = relationship("IncomeSource", back_populates="budget")
    categories = relationship("Category", back_populates="budget")

class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (
        UniqueConstraint("budget_id", "name", name="uq_category_budget_name"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    budget_id = Column(String, ForeignKey("budgets.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    is_income = Column(Boolean, default=False, nullable=False)
    display_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    budget = relationship("Budget", back_populates="categories")

class Envelope(Base):
    __tablename__ = "envelopes"
    __table_args__ = (
        UniqueConstraint("budget_id", "name", name="uq_envelope_budget_name"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    budget_id = Column(String, ForeignKey("budgets.id"), nullable=False, index=True)
    category_id = Column(String, ForeignKey("categories.id"), nullable=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    envelope_type = Column(
        PgEnum(EnvelopeType, name="envelope_type", values_callable=_enum_values),
        default=EnvelopeType.REGULAR,
        nullable=False
    )
    # Cached balance, written only by the balance-effect applier
    current_balance = Column(MONEY, nullable=False, default=0)
    target_amount = Column(MONEY, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    display_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    budget = relationship("Budget", back_populates="envelopes")
    category = relationship("Category")

class Payee(Base):
    __tablename__ = "payees"
    __table_args__ = (
        UniqueConstraint("budget_id", "name", name="uq_payee_budget_name"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    budget_id = Column(String, ForeignKey("budgets.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    budget = relationship("Budget", back_populates="payees")

class IncomeSource(Base):
    __tablename__ = "income_sources"
    __table_args__ = (
        UniqueConstraint("budget_id", "name", name="uq_income_source_budget_name"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    budget_id = Column(String, ForeignKey("budgets.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    expected_amount = Column(MONEY, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    budget = relationship("Budget", back_populates="income_sources")

class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_budget_active_date", "budget_id", "is_deleted", "transaction_date"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    budget_id = Column(String, ForeignKey("budgets.id"), nullable=False, index=True)
    transaction_type = Column(
        PgEnum(TransactionType, name="transaction_type", values_callable=_enum_values),
        nullable=False
    )
    amount = Column(MONEY, nullable=False)
    transaction_date = Column(Date, nullable=False)
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    from_envelope_id = Column(String, ForeignKey("envelopes.id"), nullable=True, index=True)
    to_envelope_id = Column(String, ForeignKey("envelopes.id"), nullable=True, index=True)
    income_source_id = Column(String, ForeignKey("income_sources.id"), nullable=True)
    payee_id = Column(String, ForeignKey("payees.id"), nullable=True, index=True)
    category_id = Column(String, ForeignKey("categories.id"), nullable=True)

    is_cleared = Column(Boolean, default=False, nullable=False)
    is_reconciled = Column(Boolean, default=False, nullable=False)

    # Soft delete state, changed only through transaction_state.transition
    is_deleted = Column(Boolean, default=False, nullable=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(String, nullable=True)

    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Optimistic concurrency counter, bumped by the ORM on every row write
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    from_envelope = relationship("Envelope", foreign_keys=[from_envelope_id])
    to_envelope = relationship("Envelope", foreign_keys=[to_envelope_id])
    payee = relationship("Payee")
    income_source = relationship("IncomeSource")
    category = relationship("Category")
    events = relationship("TransactionEvent", back_populates="transaction", order_by="TransactionEvent.performed_at")

class TransactionEvent(Base):
    """Append-only audit row, one per transaction state change"""
    __tablename__ = "transaction_events"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    transaction_id = Column(String, ForeignKey("transactions.id"), nullable=False, index=True)
    budget_id = Column(String, ForeignKey("budgets.id"), nullable=False, index=True)
    event_type = Column(
        PgEnum(TransactionEventType, name="transaction_event_type", values_callable=_enum_values),
        nullable=False
    )
    event_description = Column(String, nullable=True)
    changed_fields = Column(JSON, nullable=False, default=list)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=False)
    performed_by = Column(String, nullable=True)
    performed_at = Column(DateTime(timezone=True), default=utcnow, index=True)

    # Relationships
    transaction = relationship("Transaction", back_populates="events")

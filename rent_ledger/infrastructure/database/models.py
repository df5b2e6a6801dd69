"""SQLAlchemy ORM models for tenancies and their billing charges"""

import uuid
from sqlalchemy import Column, String, Boolean, Float, DateTime, Date, Integer, ForeignKey, Text, JSON
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class Tenancy(Base):
    """Active occupancy of a property; owns the billing schedule"""

    __tablename__ = "tenancy"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_name = Column(Text, nullable=False)
    occupant_count = Column(Integer, nullable=False, default=1)
    rent_amount = Column(Float, nullable=False)
    due_day = Column(Text, nullable=False, default="last")
    rent_start_date = Column(Date, nullable=True)
    contract_months = Column(Integer, nullable=False, default=12)
    overflow_balance = Column(Float, nullable=False, default=0.0)
    security_deposit = Column(Float, nullable=False, default=0.0)
    advance_payment = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    charges = relationship("BillingCharge", back_populates="tenancy", cascade="all, delete-orphan")


class BillingCharge(Base):
    """One periodic billing obligation"""

    __tablename__ = "billing_charge"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenancy_id = Column(String(36), ForeignKey("tenancy.id", ondelete="CASCADE"), nullable=False, index=True)
    due_date = Column(Date, nullable=False)
    base_amount = Column(Float, nullable=False)
    extra_amount = Column(Float, nullable=False, default=0.0)
    gross_amount = Column(Float, nullable=False)
    paid_amount = Column(Float, nullable=False, default=0.0)
    status = Column(Text, nullable=False, default="not_yet_due")
    billing_period = Column(Integer, nullable=True)
    is_supplemental = Column(Boolean, nullable=False, default=False)
    expense_items = Column(JSON, nullable=True)
    occupant_payments = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    tenancy = relationship("Tenancy", back_populates="charges")

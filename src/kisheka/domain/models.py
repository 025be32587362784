"""SQLAlchemy ORM models for the supplier response service.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime for timestamps (no TIMESTAMPTZ)
"""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from kisheka.infra.database import Base


# ---------------------------------------------------------------------------
# People
# ---------------------------------------------------------------------------


class User(Base):
    """Platform user (owner, project manager) who creates purchase orders."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), nullable=False, default="pm")  # owner, pm, clerk, supplier
    status = Column(String(20), default="active")
    created_at = Column(DateTime, default=func.now())


class Supplier(Base):
    """Material supplier reachable by SMS."""

    __tablename__ = "suppliers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True, index=True)
    email = Column(String(255), nullable=True)
    status = Column(String(20), default="active")
    language_preference = Column(String(5), default="en")  # en, sw
    sms_enabled = Column(Boolean, default=True)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())


# ---------------------------------------------------------------------------
# Projects & finances
# ---------------------------------------------------------------------------


class Project(Base):
    """Construction project with its running finance counters."""

    __tablename__ = "projects"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    budget_total = Column(Float, default=0.0)
    total_invested = Column(Float, default=0.0)
    total_used = Column(Float, default=0.0)
    committed_cost = Column(Float, default=0.0)
    available_capital = Column(Float, default=0.0)
    finances_recalculated_at = Column(DateTime, nullable=True)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    phases = relationship("Phase", back_populates="project")


class Phase(Base):
    """Construction phase; committed cost is refreshed from accepted POs."""

    __tablename__ = "phases"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False)
    name = Column(String(255), nullable=False)
    budget = Column(Float, default=0.0)
    committed_cost = Column(Float, default=0.0)
    actual_spending = Column(Float, default=0.0)
    remaining_budget = Column(Float, default=0.0)
    deleted_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    project = relationship("Project", back_populates="phases")


# ---------------------------------------------------------------------------
# Purchase orders
# ---------------------------------------------------------------------------


class PurchaseOrder(Base):
    """Purchase order sent to a supplier and answered by SMS or web link."""

    __tablename__ = "purchase_orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    purchase_order_number = Column(String(50), unique=True, nullable=False, index=True)
    supplier_id = Column(String(36), ForeignKey("suppliers.id"), nullable=False, index=True)
    supplier_name = Column(String(255), nullable=True)
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False)
    phase_id = Column(String(36), ForeignKey("phases.id"), nullable=True)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    status = Column(String(40), default="order_sent", index=True)

    # Single-material orders
    material_request_id = Column(String(36), nullable=True)
    material_name = Column(String(255), nullable=True)
    unit = Column(String(30), nullable=True)
    unit_cost = Column(Float, nullable=True)
    quantity_ordered = Column(Float, nullable=True)
    total_cost = Column(Float, default=0.0)
    delivery_date = Column(Date, nullable=True)

    # Bulk orders: [{material_request_id, material_name, quantity, unit, unit_cost, total_cost}]
    is_bulk_order = Column(Boolean, default=False)
    supports_partial_response = Column(Boolean, default=False)
    materials = Column(JSON, default=list)
    material_responses = Column(JSON, nullable=True)

    # Supplier response link
    response_token = Column(String(64), nullable=True, unique=True)
    response_token_expires_at = Column(DateTime, nullable=True)

    # Response bookkeeping
    supplier_response = Column(String(20), nullable=True)
    supplier_response_date = Column(DateTime, nullable=True)
    supplier_notes = Column(Text, nullable=True)
    auto_confirmed = Column(Boolean, default=False)
    auto_confirmed_at = Column(DateTime, nullable=True)
    auto_confirmation_method = Column(String(20), nullable=True)

    # Financials
    financial_status = Column(String(20), default="not_committed")
    committed_at = Column(DateTime, nullable=True)

    # Rejection
    rejection_reason = Column(String(50), nullable=True)
    rejection_subcategory = Column(String(80), nullable=True)
    is_retryable = Column(Boolean, nullable=True)
    retry_recommendation = Column(Text, nullable=True)
    rejection_metadata = Column(JSON, nullable=True)
    needs_reassignment = Column(Boolean, default=False)
    reassignment_suggested_at = Column(DateTime, nullable=True)

    # Modification requests awaiting owner/PM review
    supplier_modifications = Column(JSON, nullable=True)
    modification_approved = Column(Boolean, nullable=True)

    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    communications = relationship("PurchaseOrderCommunication", back_populates="purchase_order")


class PurchaseOrderCommunication(Base):
    """One outbound message about a purchase order, with gateway delivery status."""

    __tablename__ = "purchase_order_communications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    purchase_order_id = Column(String(36), ForeignKey("purchase_orders.id"), nullable=False, index=True)
    channel = Column(String(10), default="sms")  # sms, email, push
    recipient = Column(String(255), nullable=True)
    message_id = Column(String(100), nullable=True, index=True)
    status = Column(String(30), default="sent")
    delivery_status = Column(String(30), nullable=True)
    failure_reason = Column(String(100), nullable=True)
    network_code = Column(String(20), nullable=True)
    retry_count = Column(Integer, default=0)
    sent_at = Column(DateTime, default=func.now())
    delivery_reported_at = Column(DateTime, nullable=True)

    purchase_order = relationship("PurchaseOrder", back_populates="communications")


class Material(Base):
    """Material entry recorded against a project (auto-created from accepted POs)."""

    __tablename__ = "materials"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    project_id = Column(String(36), ForeignKey("projects.id"), nullable=False)
    phase_id = Column(String(36), ForeignKey("phases.id"), nullable=True)
    purchase_order_id = Column(String(36), ForeignKey("purchase_orders.id"), nullable=True)
    material_request_id = Column(String(36), nullable=True)
    name = Column(String(255), nullable=False)
    quantity = Column(Float, default=0.0)
    unit = Column(String(30), nullable=True)
    unit_cost = Column(Float, default=0.0)
    total_cost = Column(Float, default=0.0)
    status = Column(String(20), default="approved")
    is_automatic = Column(Boolean, default=False)
    notes = Column(Text, nullable=True)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=func.now())


# ---------------------------------------------------------------------------
# Audit & notifications
# ---------------------------------------------------------------------------


class AuditLog(Base):
    """Before/after record of an automated or user change."""

    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=True)
    action = Column(String(50), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(36), nullable=False, index=True)
    project_id = Column(String(36), nullable=True)
    changes = Column(JSON, default=dict)
    created_at = Column(DateTime, default=func.now())


class Notification(Base):
    """In-app push notification shown to a user."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, default=dict)
    is_read = Column(Boolean, default=False)
    created_at = Column(DateTime, default=func.now())

"""Shared test infrastructure for the Kisheka SMS test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- sms_service_mock: mock SMSService capturing outbound messages
- incoming_sms_payload: factory for Africa's Talking incoming SMS bodies
- make_user / make_supplier / make_project / make_purchase_order: row factories
"""

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from kisheka.infra.database import Base

import kisheka.domain.models  # noqa: F401

from kisheka.domain.models import Phase, Project, PurchaseOrder, Supplier, User


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


# ---------------------------------------------------------------------------
# SMS service mock
# ---------------------------------------------------------------------------

@pytest.fixture
def sms_service_mock():
    """Mock SMSService that captures outbound messages.

    send_sms appends (to_number, message) tuples to a .sent list.
    """
    mock = MagicMock()
    mock.sent = []

    async def _capture_send(to_number: str, message: str):
        mock.sent.append((to_number, message))
        return {"ok": True, "message_id": f"ATXid_{len(mock.sent)}", "status": "Success"}

    mock.send_sms = AsyncMock(side_effect=_capture_send)
    return mock


# ---------------------------------------------------------------------------
# Africa's Talking payload factory
# ---------------------------------------------------------------------------

@pytest.fixture
def incoming_sms_payload():
    """Factory that builds an Africa's Talking incoming SMS body.

    Usage:
        payload = incoming_sms_payload("+254712345678", "ACCEPT")
    """
    def _factory(
        from_number: str,
        text: str,
        to_number: str = "22384",
        message_id: str = "ATXid_inbound_1",
    ) -> dict:
        return {
            "from": from_number,
            "to": to_number,
            "text": text,
            "date": "2026-10-18T09:30:00Z",
            "id": message_id,
            "linkId": "link-1",
        }

    return _factory


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(db_session):
    """Factory that creates a User row (the PM who raised the order)."""
    async def _factory(
        name: str = "Test PM",
        email: str | None = None,
        status: str = "active",
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            name=name,
            email=email or f"{uuid.uuid4().hex[:8]}@kisheka.test",
            role="pm",
            status=status,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _factory


@pytest.fixture
def make_supplier(db_session):
    """Factory that creates a Supplier row.

    Usage:
        supplier = await make_supplier(phone="+254712345678")
    """
    async def _factory(
        phone: str = "+254712345678",
        name: str = "Mjengo Hardware",
        language_preference: str = "en",
        status: str = "active",
    ) -> Supplier:
        supplier = Supplier(
            id=str(uuid.uuid4()),
            name=name,
            phone=phone,
            status=status,
            language_preference=language_preference,
            sms_enabled=True,
        )
        db_session.add(supplier)
        await db_session.commit()
        return supplier

    return _factory


@pytest.fixture
def make_project(db_session):
    """Factory that creates a Project, optionally with one Phase."""
    async def _factory(
        total_invested: float = 1_000_000.0,
        committed_cost: float = 0.0,
        with_phase: bool = True,
    ) -> tuple[Project, Phase | None]:
        project = Project(
            id=str(uuid.uuid4()),
            name="Kilimani Apartments",
            total_invested=total_invested,
            total_used=0.0,
            committed_cost=committed_cost,
            available_capital=total_invested - committed_cost,
        )
        db_session.add(project)
        phase = None
        if with_phase:
            phase = Phase(
                id=str(uuid.uuid4()),
                project_id=project.id,
                name="Foundation",
                budget=500_000.0,
            )
            db_session.add(phase)
        await db_session.commit()
        return project, phase

    return _factory


@pytest.fixture
def make_purchase_order(db_session):
    """Factory that creates a PurchaseOrder awaiting a supplier response.

    Usage:
        po = await make_purchase_order(supplier, project, number="PO-002", unit_cost=150)
    """
    async def _factory(
        supplier: Supplier,
        project: Project,
        number: str = "PO-001",
        status: str = "order_sent",
        unit_cost: float | None = 150.0,
        quantity: float = 100.0,
        phase: Phase | None = None,
        created_by: User | None = None,
        materials: list[dict] | None = None,
        supports_partial_response: bool = False,
        created_at: datetime | None = None,
        token_expires_in: timedelta | None = timedelta(days=7),
        **overrides,
    ) -> PurchaseOrder:
        is_bulk = materials is not None
        if is_bulk:
            total = sum(line.get("total_cost") or 0.0 for line in materials)
        else:
            total = (unit_cost or 0.0) * quantity
        po = PurchaseOrder(
            id=str(uuid.uuid4()),
            purchase_order_number=number,
            supplier_id=supplier.id,
            supplier_name=supplier.name,
            project_id=project.id,
            phase_id=phase.id if phase else None,
            created_by=created_by.id if created_by else None,
            status=status,
            material_name=None if is_bulk else "Cement 50kg",
            unit=None if is_bulk else "bags",
            unit_cost=None if is_bulk else unit_cost,
            quantity_ordered=None if is_bulk else quantity,
            total_cost=total,
            is_bulk_order=is_bulk,
            supports_partial_response=supports_partial_response,
            materials=materials or [],
            response_token=uuid.uuid4().hex,
            response_token_expires_at=(
                datetime.now(timezone.utc).replace(tzinfo=None) + token_expires_in
                if token_expires_in is not None else None
            ),
            created_at=created_at or datetime.now(timezone.utc).replace(tzinfo=None),
            **overrides,
        )
        db_session.add(po)
        await db_session.commit()
        return po

    return _factory


@pytest.fixture
def bulk_lines():
    """Factory for bulk-order material lines, one per unit cost, 10 units each."""
    def _factory(*unit_costs) -> list[dict]:
        return [
            {
                "material_request_id": str(uuid.uuid4()),
                "material_name": f"Material {index}",
                "quantity": 10,
                "unit": "pcs",
                "unit_cost": cost,
                "total_cost": (cost or 0) * 10,
            }
            for index, cost in enumerate(unit_costs, start=1)
        ]

    return _factory

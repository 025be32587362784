"""In-memory port implementations for the reply pipeline tests.

- order_store: OrderLookupPort + OrderMutationPort over dicts
- notifier: NotificationPort recording SMS and pushes
- audit_log: AuditPort recording entries
- finance: FinancialEffectsPort recording calls
- make_order_ref / make_supplier_ref: snapshot factories
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from kisheka.domain.enums import AWAITING_RESPONSE_STATUSES, Language, PurchaseOrderStatus
from kisheka.domain.errors import TransactionFailedError
from kisheka.sms.contracts import MaterialLine, PurchaseOrderRef, SupplierRef

NOW = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)


class FakeOrderStore:
    def __init__(self):
        self.orders: dict[str, PurchaseOrderRef] = {}
        self.suppliers: dict[str, SupplierRef] = {}
        self.fields: dict[str, dict] = {}
        self.committed: dict[str, float] = {}
        self.transaction_audits: list[dict] = []
        self.fail_accept = False

    def add_order(self, order: PurchaseOrderRef) -> PurchaseOrderRef:
        self.orders[order.id] = order
        return order

    def add_supplier(self, supplier: SupplierRef) -> SupplierRef:
        self.suppliers[supplier.id] = supplier
        return supplier

    # OrderLookupPort

    async def find_by_reference(self, reference):
        for order in self.orders.values():
            if order.purchase_order_number.upper() == reference.upper():
                return order
        return None

    async def find_active_supplier_by_phone(self, phone_variants):
        for supplier in self.suppliers.values():
            if supplier.phone in phone_variants:
                return supplier
        return None

    async def find_supplier_by_id(self, supplier_id):
        return self.suppliers.get(supplier_id)

    def _awaiting(self, supplier_id):
        return [
            order for order in self.orders.values()
            if order.supplier_id == supplier_id and order.status in AWAITING_RESPONSE_STATUSES
        ]

    async def find_most_recent_awaiting_order(self, supplier_id):
        candidates = sorted(self._awaiting(supplier_id), key=lambda o: o.created_at, reverse=True)
        return candidates[0] if candidates else None

    async def count_awaiting_orders(self, supplier_id):
        return len(self._awaiting(supplier_id))

    # OrderMutationPort

    async def apply_transition(self, order_id, new_status, fields):
        order = self.orders[order_id]
        if order.status not in AWAITING_RESPONSE_STATUSES:
            return False
        self.orders[order_id] = replace(order, status=new_status)
        self.fields[order_id] = dict(fields)
        return True

    async def apply_accept_transaction(self, order_id, fields, project_id, amount, audit_changes, audit_action=None):
        order = self.orders[order_id]
        if order.status not in AWAITING_RESPONSE_STATUSES:
            return False
        if self.fail_accept:
            raise TransactionFailedError(order_id, "ledger unavailable")
        self.orders[order_id] = replace(order, status=PurchaseOrderStatus(fields["status"]))
        self.fields[order_id] = dict(fields)
        self.committed[project_id] = self.committed.get(project_id, 0.0) + amount
        self.transaction_audits.append({"action": audit_action, "changes": audit_changes})
        return True


class RecordingNotifier:
    def __init__(self):
        self.sms: list[tuple[str, str]] = []
        self.pushes: list[dict] = []
        self.fail_sms = False

    async def send_sms(self, to, message):
        if self.fail_sms:
            raise RuntimeError("gateway down")
        self.sms.append((to, message))
        return True

    async def send_push_to_user(self, user_id, title, message, data=None):
        self.pushes.append({"user_id": user_id, "title": title, "message": message, "data": data})
        return True


class RecordingAudit:
    def __init__(self):
        self.entries: list[dict] = []
        self.fail = False

    async def record(self, action, entity_type, entity_id, project_id, changes):
        if self.fail:
            raise RuntimeError("audit table locked")
        self.entries.append({
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "project_id": project_id,
            "changes": changes,
        })


class RecordingFinance:
    def __init__(self):
        self.calls: list[tuple[str, str]] = []
        self.fail_phase = False

    async def refresh_phase_committed_cost(self, order):
        if self.fail_phase:
            raise RuntimeError("phase missing")
        self.calls.append(("phase", order.id))

    async def recalculate_project_finances(self, project_id):
        self.calls.append(("project", project_id))

    async def create_materials_for_order(self, order):
        self.calls.append(("materials", order.id))
        return ["mat-1"]


@pytest.fixture
def order_store():
    return FakeOrderStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def audit_log():
    return RecordingAudit()


@pytest.fixture
def finance():
    return RecordingFinance()


@pytest.fixture
def make_supplier_ref():
    def _factory(
        supplier_id: str = "sup-1",
        phone: str = "+254712345678",
        language: Language = Language.EN,
    ) -> SupplierRef:
        return SupplierRef(id=supplier_id, name="Mjengo Hardware", phone=phone, language_preference=language)

    return _factory


@pytest.fixture
def make_order_ref():
    """Factory for PurchaseOrderRef snapshots.

    Usage:
        order = make_order_ref("po-2", number="PO-002", unit_cost=150)
        bulk = make_order_ref("po-3", materials=[(100, 10), (50, 4)], supports_partial_response=True)
    """
    def _factory(
        order_id: str = "po-1",
        number: str = "PO-001",
        supplier_id: str = "sup-1",
        status: PurchaseOrderStatus = PurchaseOrderStatus.ORDER_SENT,
        unit_cost: float | None = 150.0,
        quantity: float | None = 100.0,
        materials: list[tuple] | None = None,
        supports_partial_response: bool = False,
        age: timedelta = timedelta(hours=1),
        expires_in: timedelta | None = timedelta(days=7),
        **overrides,
    ) -> PurchaseOrderRef:
        lines = ()
        if materials is not None:
            lines = tuple(
                MaterialLine(
                    material_request_id=f"req-{index}",
                    material_name=f"Material {index}",
                    quantity=qty,
                    unit="pcs",
                    unit_cost=cost,
                    total_cost=(cost or 0) * qty,
                )
                for index, (cost, qty) in enumerate(materials, start=1)
            )
        if lines:
            total = sum(line.total_cost for line in lines)
        else:
            total = (unit_cost or 0) * (quantity or 0)
        values = dict(
            id=order_id,
            purchase_order_number=number,
            supplier_id=supplier_id,
            status=status,
            project_id="proj-1",
            supplier_name="Mjengo Hardware",
            phase_id="phase-1",
            created_by="user-1",
            is_bulk_order=materials is not None,
            supports_partial_response=supports_partial_response,
            materials=lines,
            material_name=None if materials is not None else "Cement 50kg",
            unit=None if materials is not None else "bags",
            unit_cost=None if materials is not None else unit_cost,
            quantity_ordered=None if materials is not None else quantity,
            total_cost=total,
            response_token_expires_at=NOW + expires_in if expires_in is not None else None,
            created_at=NOW - age,
        )
        values.update(overrides)
        return PurchaseOrderRef(**values)

    return _factory


@pytest.fixture
def now():
    """Fixed clock for resolver and applier tests."""
    return NOW

"""
conftest.py — Shared pytest fixtures for the order costing test suite.

Engine and report tests are pure unit tests. API tests run the FastAPI app
through TestClient with ``get_db`` overridden by an in-memory fake session,
so no database or external service is required.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``app.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
from datetime import datetime, timezone
from decimal import Decimal

import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any app imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Order payload fixtures (camelCase, as served to the order-history screen)
# ---------------------------------------------------------------------------

@pytest.fixture
def itemized_order():
    """
    Scenario A: one raw-material line (10 x 5), no packaging, 50 transport,
    stored margin 20 %.

    subtotal = 50, tax = (50 + 50) x 0.14 = 14, cost-with-tax = 114,
    revenue = 114 / 0.8 = 142.5, profit = 28.5.
    """
    return {
        "id": 101,
        "orderNumber": "PRD-0001",
        "orderType": "production",
        "status": "completed",
        "description": "Paracetamol 500mg tablets",
        "customerName": "Alexandria Pharmacy",
        "customerCompany": "Alexandria Pharmacy LLC",
        "rawMaterials": [{"id": 1, "name": "API powder", "quantity": 10, "unitPrice": 5}],
        "packagingMaterials": [],
        "totalMaterialCost": "50",
        "totalAdditionalFees": 50,
        "profitMarginPercentage": "20",
        "createdAt": "2024-03-01T09:00:00Z",
    }


@pytest.fixture
def legacy_lump_sum_order():
    """
    Scenario B: pre-itemization order recorded only as a 200 lump sum,
    no fees, stored margin 0 %.

    tax = 28, cost-with-tax = 228, revenue = 228, profit = 0.
    """
    return {
        "id": 7,
        "orderNumber": "RFN-0007",
        "orderType": "refining",
        "status": "pending",
        "description": "Ethanol refining",
        "customerName": "Cairo Labs",
        "rawMaterials": None,
        "packagingMaterials": None,
        "totalMaterialCost": "200",
        "totalAdditionalFees": 0,
        "profitMarginPercentage": "0",
        "createdAt": "2023-11-15T12:30:00Z",
    }


@pytest.fixture
def json_string_order():
    """Order whose line items were stored as JSON text (older rows)."""
    return {
        "id": 12,
        "orderNumber": "PRD-0012",
        "orderType": "production",
        "status": "in_progress",
        "description": "Vitamin C syrup",
        "customerName": "Delta Medical",
        "rawMaterials": '[{"quantity": "4", "unitPrice": "12.5"}, {"quantity": "2", "unitPrice": "25"}]',
        "packagingMaterials": '[{"quantity": "100", "unitPrice": "0.5"}]',
        "totalMaterialCost": "0",
        "totalAdditionalFees": "30",
        "profitMarginPercentage": "25",
        "createdAt": "2024-05-20T08:00:00Z",
    }


@pytest.fixture
def history_orders(itemized_order, legacy_lump_sum_order, json_string_order):
    return [legacy_lump_sum_order, itemized_order, json_string_order]


# ---------------------------------------------------------------------------
# ORM fixtures for the API tests
# ---------------------------------------------------------------------------

def make_orm_order(
    order_id: int,
    order_number: str,
    margin: str = "20",
    fees: str = "50",
    raw_materials=None,
    status: str = "pending",
    created_at: datetime = None,
):
    from app.models.orm_models import Customer, Order

    order = Order(
        id=order_id,
        order_number=order_number,
        order_type="production",
        customer_id=1,
        description=f"Batch {order_number}",
        status=status,
        total_material_cost=Decimal("0"),
        total_additional_fees=Decimal(fees),
        total_cost=Decimal("0"),
        profit_margin_percentage=Decimal(margin),
        raw_materials=raw_materials if raw_materials is not None else [
            {"id": 1, "name": "Lactose", "quantity": "10", "unitPrice": "5"},
        ],
        packaging_materials=[],
        created_at=created_at or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc),
        updated_at=created_at or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc),
    )
    order.customer = Customer(id=1, name="Alexandria Pharmacy", company="Alexandria Pharmacy LLC")
    return order


class _FakeResult:
    def __init__(self, rows):
        self._rows = list(rows)

    def scalar_one_or_none(self):
        return self._rows[0] if self._rows else None

    def scalars(self):
        return self

    def all(self):
        return list(self._rows)


class FakeSession:
    """
    Minimal stand-in for AsyncSession.

    ``execute`` answers ``select(Order)`` either by primary key (a single
    ``Order.id == x`` where clause) or with every order, newest first.
    ``rollback`` restores the margins captured at the last successful commit.
    """

    def __init__(self, orders, fail_commit: bool = False):
        self.orders = {o.id: o for o in orders}
        self.fail_commit = fail_commit
        self.commits = 0
        self.rollbacks = 0
        self._committed = {o.id: o.profit_margin_percentage for o in orders}

    async def execute(self, stmt):
        where = stmt.whereclause
        if where is None:
            rows = sorted(self.orders.values(), key=lambda o: o.created_at, reverse=True)
            return _FakeResult(rows)
        order = self.orders.get(where.right.value)
        return _FakeResult([order] if order else [])

    async def commit(self):
        if self.fail_commit:
            from sqlalchemy.exc import OperationalError
            raise OperationalError("UPDATE orders", {}, Exception("connection lost"))
        self.commits += 1
        self._committed = {oid: o.profit_margin_percentage for oid, o in self.orders.items()}

    async def rollback(self):
        self.rollbacks += 1
        for oid, margin in self._committed.items():
            self.orders[oid].profit_margin_percentage = margin

    async def close(self):
        pass


@pytest.fixture
def orm_orders():
    return [
        make_orm_order(1, "PRD-0001", margin="20", status="completed",
                       created_at=datetime(2024, 3, 1, tzinfo=timezone.utc)),
        make_orm_order(2, "PRD-0002", margin="40", fees="0",
                       created_at=datetime(2024, 4, 1, tzinfo=timezone.utc)),
    ]


@pytest.fixture
def fake_session(orm_orders):
    return FakeSession(orm_orders)


@pytest.fixture
def client_factory():
    """Build a TestClient whose get_db yields the given fake session."""
    from fastapi.testclient import TestClient
    from app.main import app
    from app.db import get_db

    def _make(session):
        async def _override_get_db():
            yield session

        app.dependency_overrides[get_db] = _override_get_db
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_perf_tracker():
    from app.services.perf_monitor import tracker
    tracker.reset()
    yield
    tracker.reset()


@pytest.fixture
def order_factory():
    """Expose make_orm_order to tests that need a custom ORM order."""
    return make_orm_order


@pytest.fixture
def failing_session(orm_orders):
    """FakeSession whose commit raises, as a dropped database connection would."""
    return FakeSession(orm_orders, fail_commit=True)

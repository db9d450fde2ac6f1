"""ORM Models for the pharma ERP order service — SQLAlchemy 2.0"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from sqlalchemy import (
    String, Text, Integer, Numeric, DateTime, ForeignKey, Index
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from app.db import Base


# ── CUSTOMERS ─────────────────────────────────────────────────────────────────
class Customer(Base):
    __tablename__ = "customers"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    company: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    orders: Mapped[list["Order"]] = relationship("Order", back_populates="customer")


# ── ORDERS (production / refining) ────────────────────────────────────────────
class Order(Base):
    __tablename__ = "orders"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    order_type: Mapped[str] = mapped_column(String(20), nullable=False)  # "production" | "refining"
    customer_id: Mapped[int] = mapped_column(Integer, ForeignKey("customers.id"), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    # Legacy lump sum; itemized orders carry raw_materials / packaging_materials instead
    total_material_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_additional_fees: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    total_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    profit_margin_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("20")
    )
    target_product_id: Mapped[Optional[int]] = mapped_column(Integer)   # refining orders only
    expected_output_quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 3))
    refining_steps: Mapped[Optional[str]] = mapped_column(Text)
    raw_materials: Mapped[Optional[list]] = mapped_column(JSONB)
    packaging_materials: Mapped[Optional[list]] = mapped_column(JSONB)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    customer: Mapped[Optional["Customer"]] = relationship("Customer", back_populates="orders")

    __table_args__ = (
        Index("ix_orders_type_created", "order_type", "created_at"),
    )

    def to_cost_input(self) -> Dict[str, Any]:
        """camelCase order record as consumed by compute_order_costs and the history export."""
        customer = self.__dict__.get("customer")
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "orderType": self.order_type,
            "customerId": self.customer_id,
            "customerName": customer.name if customer else None,
            "customerCompany": customer.company if customer else None,
            "description": self.description,
            "status": self.status,
            "totalMaterialCost": _decimal_str(self.total_material_cost),
            "totalAdditionalFees": _decimal_str(self.total_additional_fees),
            "totalCost": _decimal_str(self.total_cost),
            "profitMarginPercentage": _decimal_str(self.profit_margin_percentage),
            "rawMaterials": self.raw_materials,
            "packagingMaterials": self.packaging_materials,
            "expectedOutputQuantity": _decimal_str(self.expected_output_quantity),
            "refiningSteps": self.refining_steps,
            "targetProductId": self.target_product_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


def _decimal_str(value: Optional[Decimal]) -> Optional[str]:
    # Numeric columns are sent as strings, matching the stored precision
    return None if value is None else str(value)

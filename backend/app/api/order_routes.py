"""
Order costing API Routes

GET   /api/orders/history                 — order-history JSON export (statistics + rows)
GET   /api/orders/{id}/costs?margin=      — breakdown for a candidate margin (not persisted)
PATCH /api/orders/{id}/profit-margin      — persist an order's default profit margin
"""
import math
import time
import logging
from decimal import ROUND_HALF_UP, Decimal
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.db import get_db
from app.models.orm_models import Order
from app.services.order_costing_engine import compute_order_costs
from app.services.order_history_report import DEFAULT_PAGE_SIZE, build_history_report
from app.services.perf_monitor import tracker

router = APIRouter(prefix="/api/orders", tags=["Order Costing"])
logger = logging.getLogger("pharma-erp.order-routes")

MARGIN_PRECISION = Decimal("0.01")


# ── Pydantic Models ─────────────────────────────────────────────────────────

class ProfitMarginUpdate(BaseModel):
    profitMarginPercentage: float = Field(..., ge=0, le=100, allow_inf_nan=False)


# ── Helper: load one order ──────────────────────────────────────────────────

async def _get_order(order_id: int, db: AsyncSession) -> Order:
    result = await db.execute(
        select(Order).options(selectinload(Order.customer)).where(Order.id == order_id)
    )
    order = result.scalar_one_or_none()
    if not order:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    return order


def _stored_margin(value: float) -> Decimal:
    # orders.profit_margin_percentage is Numeric(5, 2)
    return Decimal(str(value)).quantize(MARGIN_PRECISION, rounding=ROUND_HALF_UP)


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


# ── Order history export ────────────────────────────────────────────────────

@router.get("/history")
async def get_order_history(
    order_type: Optional[str] = Query(None, alias="type"),
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Statistics and per-order breakdowns for the order-history screen."""
    result = await db.execute(
        select(Order).options(selectinload(Order.customer)).order_by(Order.created_at.desc())
    )
    orders = [o.to_cost_input() for o in result.scalars().all()]
    return build_history_report(
        orders,
        order_type=order_type,
        status=status,
        search=search,
        page=page,
        per_page=per_page,
    )


# ── Candidate margin preview ────────────────────────────────────────────────

@router.get("/{order_id}/costs")
async def get_order_costs(
    order_id: int,
    request: Request,
    margin: Optional[float] = Query(None, description="Candidate margin %, not persisted"),
    db: AsyncSession = Depends(get_db),
):
    """Breakdown for the order, using ``margin`` instead of the stored default when given."""
    if margin is not None and not math.isfinite(margin):
        raise HTTPException(status_code=422, detail="margin must be a finite number")
    order = await _get_order(order_id, db)

    start = time.perf_counter()
    costs = compute_order_costs(order.to_cost_input(), margin_override=margin)
    tracker.record_breakdown((time.perf_counter() - start) * 1000)

    logger.debug(
        "order costs served",
        extra={"order_id": order_id, "request_id": _request_id(request)},
    )
    return {
        "orderId": order.id,
        "marginOverride": margin,
        "storedProfitMarginPercentage": float(order.profit_margin_percentage),
        "costs": costs.to_dict(),
    }


# ── Profit-margin override ──────────────────────────────────────────────────

@router.patch("/{order_id}/profit-margin")
async def update_profit_margin(
    order_id: int,
    req: ProfitMarginUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Persist a new default profit margin (0-100) for an order.

    On a database failure the transaction is rolled back, the stored default
    is left as it was, and 503 is returned so the caller keeps showing the
    breakdown computed from its in-memory candidate value.
    """
    order = await _get_order(order_id, db)

    try:
        order.profit_margin_percentage = _stored_margin(req.profitMarginPercentage)
        order.updated_at = datetime.now(timezone.utc)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        tracker.record_margin_failure()
        logger.error(
            f"Failed to update profit margin: {e}",
            extra={"order_id": order_id, "request_id": _request_id(request)},
        )
        raise HTTPException(status_code=503, detail="Failed to update profit margin")

    tracker.record_margin_saved()
    logger.info(
        "profit margin updated",
        extra={
            "order_id": order_id,
            "profit_margin": float(order.profit_margin_percentage),
            "request_id": _request_id(request),
        },
    )

    order_data = order.to_cost_input()
    costs = compute_order_costs(order_data)
    tracker.record_breakdown()
    return {
        "success": True,
        "message": "Profit margin updated successfully",
        "order": order_data,
        "costs": costs.to_dict(),
    }

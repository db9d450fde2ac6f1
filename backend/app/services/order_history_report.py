"""
Order-history reporting: statistics, filtering, paging and export rows.

All money figures come from compute_order_costs so that the history table,
the statistics cards and the JSON export agree to the cent.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime, date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from app.services.order_costing_engine import CostBreakdown, compute_order_costs, order_field
from app.services.materials_parser import parse_materials
from app.services.perf_monitor import timed, tracker

logger = logging.getLogger("pharma-erp.reports")

DEFAULT_PAGE_SIZE = 10

_STATUS_LABELS: Dict[str, str] = {
    "pending": "Pending",
    "in_progress": "In Progress",
    "completed": "Completed",
}


def status_label(status: Optional[str]) -> str:
    return _STATUS_LABELS.get(status or "", "Cancelled")


def type_label(order_type: Optional[str]) -> str:
    return "Production" if order_type == "production" else "Refining"


@dataclass
class OrderStatistics:
    total_orders: int = 0
    completed_orders: int = 0
    pending_orders: int = 0
    total_revenue: float = 0.0
    total_costs: float = 0.0
    total_profit: float = 0.0
    average_order_value: float = 0.0
    profit_margin: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalOrders": self.total_orders,
            "completedOrders": self.completed_orders,
            "pendingOrders": self.pending_orders,
            "totalRevenue": round(self.total_revenue, 2),
            "totalCosts": round(self.total_costs, 2),
            "totalProfit": round(self.total_profit, 2),
            "averageOrderValue": round(self.average_order_value, 2),
            "profitMargin": round(self.profit_margin, 2),
        }


def build_order_statistics(orders: Sequence[Any]) -> OrderStatistics:
    """
    Aggregate the statistics cards shown above the history table.

    total_costs is the sum of cost-with-tax, so profit_margin here is the
    blended margin-of-revenue across all orders.
    """
    stats = OrderStatistics(total_orders=len(orders))
    for order in orders:
        status = order_field(order, "status")
        if status == "completed":
            stats.completed_orders += 1
        elif status == "pending":
            stats.pending_orders += 1

        costs = compute_order_costs(order)
        tracker.record_breakdown()
        stats.total_revenue += costs.revenue
        stats.total_costs += costs.total_with_tax

    stats.total_profit = stats.total_revenue - stats.total_costs
    if stats.total_orders > 0:
        stats.average_order_value = stats.total_revenue / stats.total_orders
    if stats.total_revenue > 0:
        stats.profit_margin = stats.total_profit / stats.total_revenue * 100.0
    return stats


def _created_at(order: Any) -> datetime:
    value = order_field(order, "createdAt")
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
        except ValueError:
            pass
    return datetime.min


def _search_fields(order: Any) -> List[str]:
    fields = [
        order_field(order, "orderNumber"),
        order_field(order, "description"),
        order_field(order, "customerName"),
        order_field(order, "customerCompany"),
    ]
    return [str(f).lower() for f in fields if f]


def filter_orders(
    orders: Sequence[Any],
    order_type: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
) -> List[Any]:
    """Apply the history-table filters and sort newest first."""
    filtered = list(orders)

    if order_type and order_type != "all":
        filtered = [o for o in filtered if order_field(o, "orderType") == order_type]
    if status and status != "all":
        filtered = [o for o in filtered if order_field(o, "status") == status]

    query = (search or "").strip().lower()
    if query:
        filtered = [o for o in filtered if any(query in f for f in _search_fields(o))]

    return sorted(filtered, key=_created_at, reverse=True)


def paginate(items: Sequence[Any], page: int = 1, per_page: int = DEFAULT_PAGE_SIZE) -> Tuple[List[Any], int]:
    per_page = max(1, per_page)
    page = max(1, page)
    total_pages = math.ceil(len(items) / per_page)
    start = (page - 1) * per_page
    return list(items[start:start + per_page]), total_pages


def build_history_row(order: Any, costs: Optional[CostBreakdown] = None) -> Dict[str, Any]:
    """One export row, every figure taken from the shared breakdown."""
    if costs is None:
        costs = compute_order_costs(order)
        tracker.record_breakdown()
    created = _created_at(order)
    return {
        "orderNumber": order_field(order, "orderNumber") or "",
        "orderType": type_label(order_field(order, "orderType")),
        "customer": order_field(order, "customerName") or "",
        "finalProduct": order_field(order, "description") or "",
        "status": status_label(order_field(order, "status")),
        "materialsCost": round(costs.subtotal, 2),
        "additionalFees": round(costs.additional_fees, 2),
        "totalCost": round(costs.total_with_tax, 2),
        "profitMargin": f"{costs.profit_margin:g}%",
        "revenue": round(costs.revenue, 2),
        "profit": round(costs.profit, 2),
        "createdDate": created.date().isoformat() if created != datetime.min else "",
    }


def _line_item_dicts(order: Any, name: str, legacy_name: str) -> List[Dict[str, Any]]:
    items = order_field(order, name) or order_field(order, legacy_name)
    return [line.to_dict() for line in parse_materials(items)]


def build_export_entry(order: Any, costs: CostBreakdown) -> Dict[str, Any]:
    """Export row plus the order id, its line items and the rounded breakdown."""
    entry = {"id": order_field(order, "id")}
    entry.update(build_history_row(order, costs))
    entry["rawMaterials"] = _line_item_dicts(order, "rawMaterials", "materials")
    entry["packagingMaterials"] = _line_item_dicts(order, "packagingMaterials", "packaging")
    entry["costs"] = costs.rounded()
    return entry


@timed
def build_history_report(
    orders: Sequence[Any],
    order_type: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    per_page: int = DEFAULT_PAGE_SIZE,
) -> Dict[str, Any]:
    """
    JSON export of the order history.

    Statistics cover every order passed in; the rows cover the filtered page.
    """
    statistics = build_order_statistics(orders)
    filtered = filter_orders(orders, order_type=order_type, status=status, search=search)
    page_items, total_pages = paginate(filtered, page, per_page)

    rows = []
    for order in page_items:
        costs = compute_order_costs(order)
        tracker.record_breakdown()
        rows.append(build_export_entry(order, costs))

    logger.info(
        "order history report built",
        extra={"total_orders": len(orders), "matched": len(filtered), "page": page},
    )
    return {
        "statistics": statistics.to_dict(),
        "orders": rows,
        "page": max(1, page),
        "totalPages": total_pages,
        "totalMatched": len(filtered),
    }


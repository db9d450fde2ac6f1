"""
OrderCostingEngine — cost, VAT and profitability breakdown for one order.

Pipeline (strictly sequential, each stage consumes the previous one):
  1. CostAggregator              — raw-materials + packaging cost from line items,
                                   pre-computed overrides or the legacy lump sum
  2. TaxCalculator               — fixed 14 % VAT on materials + additional fees
  3. RevenueSolver               — revenue from a margin-of-revenue percentage
  4. PercentageBreakdownGenerator — display shares of the pre-tax total

Every stage is a pure function of its arguments. Nothing is rounded here;
rounding happens at the display edge (CostBreakdown.rounded()).
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from app.services.materials_parser import parse_float, parse_materials, to_number

logger = logging.getLogger("pharma-erp.costing")


# ---------------------------------------------------------------------------
# Engine constants
# ---------------------------------------------------------------------------
VAT_RATE: float = 0.14                          # statutory VAT, not read from order data
DEFAULT_PROFIT_MARGIN_PCT: float = 20.0         # used when an order carries no margin
MIN_PROFIT_MARGIN_PCT: float = 0.0
MAX_PROFIT_MARGIN_PCT: float = 95.0
MARGIN_CAP_REVENUE_MULTIPLIER: float = 20.0     # revenue = cost x 20 at the 95 % ceiling


# ---------------------------------------------------------------------------
# Lenient input helpers
# ---------------------------------------------------------------------------

def _is_finite_number(value: Any) -> bool:
    """True only for real numbers (not numeric strings, not bools)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(parse_float(value))


# camelCase wire name -> snake_case ORM attribute
_FIELD_ALIASES: Dict[str, str] = {
    "rawMaterials": "raw_materials",
    "packagingMaterials": "packaging_materials",
    "materialsCost": "materials_cost",
    "packagingCost": "packaging_cost",
    "totalMaterialCost": "total_material_cost",
    "totalAdditionalFees": "total_additional_fees",
    "profitMarginPercentage": "profit_margin_percentage",
    "orderNumber": "order_number",
    "orderType": "order_type",
    "customerName": "customer_name",
    "customerCompany": "customer_company",
    "createdAt": "created_at",
}


def order_field(order: Any, name: str) -> Any:
    """Read ``name`` from a mapping or an object, accepting either naming style."""
    snake = _FIELD_ALIASES.get(name, name)
    if isinstance(order, Mapping):
        if name in order:
            return order[name]
        return order.get(snake)
    value = getattr(order, name, None)
    if value is None:
        value = getattr(order, snake, None)
    return value


def sum_line_items(items: Any) -> float:
    """Sum quantity x unit_price over line items; anything unusable counts as 0."""
    if not items:
        return 0.0
    lines = parse_materials(items)
    return float(sum(line.quantity * line.unit_price for line in lines))


# ---------------------------------------------------------------------------
# Stage results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResolvedCosts:
    raw_materials_cost: float
    packaging_cost: float


@dataclass(frozen=True)
class TaxResult:
    tax_amount: float
    total_with_tax: float


@dataclass(frozen=True)
class RevenueResult:
    profit_margin: float
    revenue: float
    profit: float


@dataclass(frozen=True)
class CostPercentages:
    raw_materials_percent: float = 0.0
    packaging_percent: float = 0.0
    additional_fees_percent: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "rawMaterialsPercent": self.raw_materials_percent,
            "packagingPercent": self.packaging_percent,
            "additionalFeesPercent": self.additional_fees_percent,
        }


@dataclass(frozen=True)
class CostBreakdown:
    """
    Fully derived financial breakdown of one order.

    Invariants:
      subtotal       == raw_materials_cost + packaging_cost
      tax_amount     == (subtotal + additional_fees) * VAT_RATE
      total_with_tax == subtotal + additional_fees + tax_amount
      profit         == revenue - total_with_tax
      0 <= profit_margin <= 95
    """
    raw_materials_cost: float
    packaging_cost: float
    subtotal: float
    additional_fees: float
    tax_amount: float
    total_with_tax: float
    profit_margin: float
    revenue: float
    profit: float
    percentages: CostPercentages

    @property
    def pre_tax_total(self) -> float:
        return self.subtotal + self.additional_fees

    def to_dict(self) -> Dict[str, Any]:
        """camelCase wire shape consumed by the order-history screens."""
        return {
            "rawMaterialsCost": self.raw_materials_cost,
            "packagingCost": self.packaging_cost,
            "subtotal": self.subtotal,
            "additionalFees": self.additional_fees,
            "taxAmount": self.tax_amount,
            "totalWithTax": self.total_with_tax,
            "profitMargin": self.profit_margin,
            "revenue": self.revenue,
            "profit": self.profit,
            "percentages": self.percentages.to_dict(),
        }

    def rounded(self, places: int = 2) -> Dict[str, Any]:
        """Display copy of to_dict() with every figure rounded."""
        data = self.to_dict()
        for key, value in data.items():
            if key == "percentages":
                data[key] = {k: round(v, places) for k, v in value.items()}
            else:
                data[key] = round(value, places)
        return data


# ---------------------------------------------------------------------------
# 1. CostAggregator
# ---------------------------------------------------------------------------

class CostAggregator:
    """Resolve raw-materials and packaging cost from whichever inputs an order carries."""

    @staticmethod
    def resolve(order: Any) -> ResolvedCosts:
        materials_override = order_field(order, "materialsCost")
        if _is_finite_number(materials_override):
            raw_materials_cost = float(materials_override)
        else:
            raw_materials_cost = sum_line_items(_line_items(order, "rawMaterials", "materials"))

        packaging_override = order_field(order, "packagingCost")
        if _is_finite_number(packaging_override):
            packaging_cost = float(packaging_override)
        else:
            packaging_cost = sum_line_items(_line_items(order, "packagingMaterials", "packaging"))

        # Legacy orders were recorded as a single lump sum before itemization.
        # Only used when neither itemized source produced anything.
        if raw_materials_cost == 0 and packaging_cost == 0:
            lump_sum = to_number(order_field(order, "totalMaterialCost"))
            if lump_sum != 0:
                raw_materials_cost = lump_sum

        return ResolvedCosts(raw_materials_cost=raw_materials_cost, packaging_cost=packaging_cost)


def _line_items(order: Any, name: str, legacy_name: str) -> Any:
    items = order_field(order, name)
    if not items:
        items = order_field(order, legacy_name)
    return items


# ---------------------------------------------------------------------------
# 2. TaxCalculator
# ---------------------------------------------------------------------------

class TaxCalculator:
    rate: float = VAT_RATE

    @classmethod
    def compute(cls, subtotal: float, additional_fees: float) -> TaxResult:
        tax_base = subtotal + additional_fees
        tax_amount = tax_base * cls.rate
        return TaxResult(tax_amount=tax_amount, total_with_tax=tax_base + tax_amount)


# ---------------------------------------------------------------------------
# 3. RevenueSolver
# ---------------------------------------------------------------------------

class RevenueSolver:
    """
    Derive revenue from a margin expressed as a percent of REVENUE.

    With margin m, cost is (1 - m) of revenue, so revenue = cost / (1 - m).
    cost * (1 + m) is a markup on cost and understates revenue.
    """

    @staticmethod
    def clamp_margin(margin_input: Any) -> float:
        # +inf is an out-of-range high margin; NaN and non-numbers mean none
        margin = parse_float(margin_input)
        if margin is None or math.isnan(margin):
            return MIN_PROFIT_MARGIN_PCT
        return max(MIN_PROFIT_MARGIN_PCT, min(MAX_PROFIT_MARGIN_PCT, margin))

    @classmethod
    def solve(cls, total_with_tax: float, margin_input: Any) -> RevenueResult:
        profit_margin = cls.clamp_margin(margin_input)
        fraction = profit_margin / 100.0

        if fraction >= MAX_PROFIT_MARGIN_PCT / 100.0:
            revenue = total_with_tax * MARGIN_CAP_REVENUE_MULTIPLIER
        else:
            revenue = total_with_tax / (1.0 - fraction)

        return RevenueResult(
            profit_margin=profit_margin,
            revenue=revenue,
            profit=revenue - total_with_tax,
        )


# ---------------------------------------------------------------------------
# 4. PercentageBreakdownGenerator
# ---------------------------------------------------------------------------

class PercentageBreakdownGenerator:

    @staticmethod
    def breakdown(
        raw_materials_cost: float,
        packaging_cost: float,
        additional_fees: float,
    ) -> CostPercentages:
        pre_tax_total = raw_materials_cost + packaging_cost + additional_fees
        if pre_tax_total <= 0:
            return CostPercentages()
        return CostPercentages(
            raw_materials_percent=raw_materials_cost / pre_tax_total * 100.0,
            packaging_percent=packaging_cost / pre_tax_total * 100.0,
            additional_fees_percent=additional_fees / pre_tax_total * 100.0,
        )


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

def resolve_margin_input(order: Any, margin_override: Optional[Any] = None) -> Any:
    """Override wins; otherwise the order's stored margin, else the 20 % default."""
    if margin_override is not None:
        return margin_override
    return to_number(order_field(order, "profitMarginPercentage"), default=DEFAULT_PROFIT_MARGIN_PCT)


def compute_order_costs(order: Any, margin_override: Optional[Any] = None) -> CostBreakdown:
    """
    Compute the full cost / tax / profit breakdown of ``order``.

    Args:
        order:           Mapping (camelCase keys) or ORM-like object.
        margin_override: Candidate margin percent taking precedence over the
                         order's persisted default for this computation only.

    Returns:
        A new CostBreakdown. Identical inputs always give identical output.
    """
    costs = CostAggregator.resolve(order)
    subtotal = costs.raw_materials_cost + costs.packaging_cost
    additional_fees = to_number(order_field(order, "totalAdditionalFees"))

    tax = TaxCalculator.compute(subtotal, additional_fees)
    revenue = RevenueSolver.solve(tax.total_with_tax, resolve_margin_input(order, margin_override))
    percentages = PercentageBreakdownGenerator.breakdown(
        costs.raw_materials_cost, costs.packaging_cost, additional_fees
    )

    breakdown = CostBreakdown(
        raw_materials_cost=costs.raw_materials_cost,
        packaging_cost=costs.packaging_cost,
        subtotal=subtotal,
        additional_fees=additional_fees,
        tax_amount=tax.tax_amount,
        total_with_tax=tax.total_with_tax,
        profit_margin=revenue.profit_margin,
        revenue=revenue.revenue,
        profit=revenue.profit,
        percentages=percentages,
    )
    logger.debug(
        "order costs computed",
        extra={"order_id": order_field(order, "id"), "profit_margin": breakdown.profit_margin},
    )
    return breakdown


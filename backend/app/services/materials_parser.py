"""Material / packaging line-item parsing shared by order storage and costing."""
import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger("pharma-erp.materials")


@dataclass
class MaterialLine:
    id: int = 0
    name: str = ""
    quantity: float = 0.0
    unit_of_measure: str = ""
    unit_price: float = 0.0

    @property
    def line_cost(self) -> float:
        return self.quantity * self.unit_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "quantity": self.quantity,
            "unitOfMeasure": self.unit_of_measure,
            "unitPrice": self.unit_price,
        }


def parse_float(value: Any) -> Optional[float]:
    """
    float(value) for numeric-like input, None for anything else.

    Integers too large for a float become +/-inf instead of raising.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        return float(value)
    except OverflowError:
        return math.inf if value > 0 else -math.inf
    except (TypeError, ValueError):
        return None


def to_number(value: Any, default: float = 0.0) -> float:
    """
    Coerce a numeric-like value to a finite float.

    None, empty / non-numeric strings, booleans, NaN, infinities and
    integers beyond float range all collapse to ``default``.
    """
    number = parse_float(value)
    if number is None or not math.isfinite(number):
        return default
    return number


def _get(item: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in item and item[key] is not None:
            return item[key]
    return None


def normalize_item(item: Any) -> MaterialLine:
    """Coerce one raw line item into a MaterialLine (non-numeric fields become 0)."""
    if isinstance(item, MaterialLine):
        return item
    if not isinstance(item, dict):
        return MaterialLine()
    return MaterialLine(
        id=int(to_number(_get(item, "id"))),
        name=str(_get(item, "name") or ""),
        quantity=to_number(_get(item, "quantity")),
        unit_of_measure=str(_get(item, "unitOfMeasure", "unit_of_measure") or ""),
        unit_price=to_number(_get(item, "unitPrice", "unit_price")),
    )


def parse_materials(data: Any) -> List[MaterialLine]:
    """
    Parse line items from a list, a JSON-encoded list, or None.

    Malformed JSON and non-list payloads yield an empty list.
    """
    if not data:
        return []

    if isinstance(data, str):
        try:
            data = json.loads(data)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Failed to parse materials JSON: {e}")
            return []

    if isinstance(data, (list, tuple)):
        return [normalize_item(item) for item in data]

    return []


def extract_order_materials(order_data: Dict[str, Any]) -> Tuple[List[MaterialLine], List[MaterialLine]]:
    """Raw and packaging lines from an order payload, honouring legacy field names."""
    raw = parse_materials(order_data.get("rawMaterials") or order_data.get("materials"))
    packaging = parse_materials(order_data.get("packagingMaterials") or order_data.get("packaging"))
    return raw, packaging


def calculate_materials_cost(materials: List[MaterialLine]) -> float:
    return sum(line.line_cost for line in materials)


def serialize_materials(materials: List[MaterialLine]) -> Optional[str]:
    """JSON for storage; None when there is nothing to store."""
    if not materials:
        return None
    return json.dumps([line.to_dict() for line in materials])

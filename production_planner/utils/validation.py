import math
from typing import Any, Dict

from production_planner.utils.date_utils import convert_to_date

def _first(record: Dict[str, Any], *keys):
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None

def validate_sale_record(record: Dict[str, Any]) -> Dict[str, str]:
    """Validate a raw sale record.

    Args:
        record: Sale record mapping (snake_case or camelCase keys)

    Returns:
        Dictionary with validation errors
    """
    if not isinstance(record, dict):
        return {'record': f'Sale record must be a mapping, got {type(record).__name__}'}

    errors = {}

    if not _first(record, 'product_id', 'productId'):
        errors['product_id'] = 'Product ID is required'

    raw_date = _first(record, 'sale_date', 'saleDate')
    if raw_date is None:
        errors['sale_date'] = 'Sale date is required'
    elif convert_to_date(raw_date) is None:
        errors['sale_date'] = f'Sale date is not a valid ISO date: {raw_date!r}'

    quantity = _first(record, 'quantity_sold', 'quantitySold')
    if quantity is None:
        errors['quantity_sold'] = 'Quantity sold is required'
    elif isinstance(quantity, bool):
        errors['quantity_sold'] = 'Quantity sold must be a number'
    else:
        try:
            numeric = float(quantity)
        except (TypeError, ValueError):
            errors['quantity_sold'] = 'Quantity sold must be a number'
        else:
            if not math.isfinite(numeric):
                errors['quantity_sold'] = 'Quantity sold must be finite'
            elif numeric < 0:
                errors['quantity_sold'] = 'Quantity sold cannot be negative'
            elif numeric != int(numeric):
                errors['quantity_sold'] = 'Quantity sold must be a whole number'

    revenue = _first(record, 'total_revenue', 'totalRevenue')
    if revenue is not None:
        try:
            numeric = float(revenue)
        except (TypeError, ValueError):
            errors['total_revenue'] = 'Total revenue must be a number'
        else:
            if not math.isfinite(numeric):
                errors['total_revenue'] = 'Total revenue must be finite'

    return errors

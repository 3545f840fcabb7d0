# production_planner/core/sales_series.py
from collections import OrderedDict
from typing import Dict, Iterable, Optional, Sequence, Union

from production_planner.core.entities import DailyObservation, ProductSeries, SaleRecord
from production_planner.config import DEFAULT_RAIN_TAGS
from production_planner.exceptions import ValidationError
from production_planner.logging_setup import get_logger
from production_planner.utils.date_utils import is_payday_window, is_weekend

logger = get_logger(__name__)

def coerce_sale_record(record: Union[SaleRecord, dict]) -> Optional[SaleRecord]:
    """Turn a raw record into a SaleRecord, or None when it is unusable.

    Args:
        record: SaleRecord or raw mapping

    Returns:
        SaleRecord, or None for a malformed record (a warning is logged)
    """
    if isinstance(record, SaleRecord):
        if record.sale_date is None or record.quantity_sold < 0:
            logger.warning(f"Dropping sale record for {record.series_key}: missing date or negative quantity")
            return None
        return record

    try:
        return SaleRecord.from_dict(record)
    except ValidationError as e:
        logger.warning(f"Dropping malformed sale record: {e.details}")
        return None
    except (TypeError, ValueError, AttributeError) as e:
        logger.warning(f"Dropping malformed sale record: {e}")
        return None

def build_product_series(
    records: Iterable[Union[SaleRecord, dict]],
    rain_tags: Sequence[str] = DEFAULT_RAIN_TAGS,
    market_id: Optional[str] = None
) -> Dict[str, ProductSeries]:
    """Group raw sale records into per-series daily observations.

    The series key is the variant id when present, otherwise the product id.
    Records for the same key and date are merged by summing quantity and
    revenue. A merged day is rainy when any of its records carries a rain tag;
    the first weather tag seen is kept as the day's tag.
    When a market is given, records from other markets are left out.

    Args:
        records: Raw sale records
        rain_tags: Weather tags that count as rain
        market_id: Only keep records of this market

    Returns:
        Dictionary mapping series key to ProductSeries, keys in first-seen order
    """
    rain = {tag.lower() for tag in rain_tags}
    days: Dict[str, Dict] = OrderedDict()
    dropped = 0

    for raw in records:
        record = coerce_sale_record(raw)
        if record is None:
            dropped += 1
            continue
        if market_id is not None and record.market_id != market_id:
            continue

        by_date = days.setdefault(record.series_key, {})
        day = by_date.get(record.sale_date)
        if day is None:
            day = {'quantity': 0, 'revenue': 0.0, 'weather': None, 'rainy': False}
            by_date[record.sale_date] = day

        day['quantity'] += record.quantity_sold
        day['revenue'] += record.total_revenue
        weather = (record.weather_condition or '').strip().lower()
        if weather:
            if day['weather'] is None:
                day['weather'] = weather
            if weather in rain:
                day['rainy'] = True

    if dropped:
        logger.warning(f"Dropped {dropped} malformed sale records")

    series_map = OrderedDict()
    for key, by_date in days.items():
        observations = tuple(
            DailyObservation(
                date=sale_date,
                quantity_sold=day['quantity'],
                revenue=day['revenue'],
                weather=day['weather'],
                is_rainy=day['rainy'],
                is_payday_window=is_payday_window(sale_date),
                is_weekend=is_weekend(sale_date)
            )
            for sale_date, day in sorted(by_date.items())
        )
        series_map[key] = ProductSeries(key=key, observations=observations)

    return series_map

def build_revenue_totals(series_map: Dict[str, ProductSeries]) -> Dict[str, float]:
    """Total revenue per series key."""
    return {key: series.total_revenue for key, series in series_map.items()}

def top_series_by_revenue(series_map: Dict[str, ProductSeries], limit: int) -> Dict[str, ProductSeries]:
    """Keep the `limit` highest-revenue series, preserving input order.

    A limit of 0 or less keeps every series. Revenue ties are broken by key.
    """
    if limit <= 0 or limit >= len(series_map):
        return series_map

    totals = build_revenue_totals(series_map)
    ranked = sorted(totals, key=lambda key: (-totals[key], key))[:limit]
    keep = set(ranked)
    return OrderedDict((key, series) for key, series in series_map.items() if key in keep)

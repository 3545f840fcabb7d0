# production_planner/core/accuracy.py
"""
Comparison of issued production quantities with realised sales.

A positive difference means more was produced than sold (waste), a negative
one means demand was left unserved (stockout).
"""
import math
from collections import OrderedDict
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from production_planner.config import config
from production_planner.core.entities import ProductSeries, index_catalogue
from production_planner.logging_setup import get_logger
from production_planner.utils.date_utils import convert_to_date, weekday_index, weekday_name
from production_planner.utils.math_utils import calculate_madp, calculate_track, mean

logger = get_logger(__name__)

@dataclass(frozen=True)
class ComparisonRecord:
    """One issued forecast next to what was actually sold that day."""
    date: date
    product_id: str
    product_name: str
    market_id: Optional[str]
    forecast_qty: int
    actual_qty: int
    diff: int
    accuracy: float
    waste: int
    stockout: int
    waste_cost: float
    stockout_revenue: float


@dataclass(frozen=True)
class ProductAccuracy:
    product_id: str
    product_name: str
    accuracy: float
    sample_size: int
    avg_bias: float
    bias_percent: float
    madp: float
    track: float
    waste_qty: int
    stockout_qty: int
    waste_cost: float
    stockout_revenue: float


@dataclass(frozen=True)
class AccuracySummary:
    total_forecasts: int
    days_with_data: int
    overall_accuracy: float
    overall_bias_percent: float
    total_waste_qty: int
    total_stockout_qty: int
    total_waste_cost: float
    total_stockout_revenue: float


@dataclass(frozen=True)
class AccuracyReport:
    records: Tuple[ComparisonRecord, ...]
    products: Tuple[ProductAccuracy, ...]
    weekdays: Dict[str, float]
    summary: AccuracySummary

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for record in data['records']:
            record['date'] = record['date'].isoformat()
        return data

def record_accuracy(forecast_qty: int, actual_qty: int) -> float:
    """Accuracy percent of one forecast.

    Returns:
        max(0, 1 - |diff| / actual) * 100; with no sales, 100 when nothing
        was forecast and 0 otherwise
    """
    if actual_qty > 0:
        return max(0.0, 1.0 - abs(forecast_qty - actual_qty) / actual_qty) * 100.0
    return 100.0 if forecast_qty == 0 else 0.0

def _field(record: Any, *names, default=None):
    for name in names:
        if isinstance(record, dict):
            value = record.get(name)
        else:
            value = getattr(record, name, None)
        if value is not None:
            return value
    return default

def _bias_percent(total_diff: float, records: List[ComparisonRecord]) -> float:
    sold = sum(r.actual_qty for r in records if r.actual_qty > 0)
    if sold <= 0:
        return 0.0
    return total_diff / sold * 100.0

def _average_accuracy(records: List[ComparisonRecord]) -> float:
    # Days without sales say nothing about accuracy
    return mean([r.accuracy for r in records if r.actual_qty > 0])

def compare_forecasts(
    forecast_records: Iterable[Any],
    series_map: Dict[str, ProductSeries],
    products: Optional[Iterable] = None
) -> List[ComparisonRecord]:
    """Pair every issued forecast with the quantity sold on its date.

    Args:
        forecast_records: ForecastOutput objects, repository records or mappings
                          with product_id, forecast_for_date / target_date and
                          optimal_quantity
        series_map: Realised sales by series key
        products: Product metadata for names and economics

    Returns:
        List of ComparisonRecord in input order
    """
    catalogue = index_catalogue(products)
    sold_by_key: Dict[str, Dict[date, int]] = {}
    comparisons = []

    for record in forecast_records:
        product_id = str(_field(record, 'product_id', 'productId', default=''))
        target = convert_to_date(_field(record, 'forecast_for_date', 'target_date', 'forecastForDate'))
        if not product_id or target is None:
            logger.warning(f"Skipping forecast record without product or date: {record!r}")
            continue

        if product_id not in sold_by_key:
            series = series_map.get(product_id)
            sold_by_key[product_id] = series.quantity_by_date() if series else {}

        forecast_qty = int(_field(record, 'optimal_quantity', 'optimalQuantity', default=0))
        actual_qty = sold_by_key[product_id].get(target, 0)
        diff = forecast_qty - actual_qty

        name, price, cost = catalogue.get(product_id, (product_id, 0.0, 0.0))
        margin = max(0.0, price - cost)
        waste = max(0, diff)
        stockout = max(0, -diff)

        comparisons.append(ComparisonRecord(
            date=target,
            product_id=product_id,
            product_name=name,
            market_id=_field(record, 'market_id', 'marketId'),
            forecast_qty=forecast_qty,
            actual_qty=actual_qty,
            diff=diff,
            accuracy=record_accuracy(forecast_qty, actual_qty),
            waste=waste,
            stockout=stockout,
            waste_cost=waste * cost,
            stockout_revenue=stockout * margin
        ))

    return comparisons

def summarize_product(product_id: str, records: List[ComparisonRecord]) -> ProductAccuracy:
    total_diff = sum(r.diff for r in records)
    forecasts = [r.forecast_qty for r in records]
    actuals = [r.actual_qty for r in records]

    return ProductAccuracy(
        product_id=product_id,
        product_name=records[0].product_name,
        accuracy=_average_accuracy(records),
        sample_size=sum(1 for r in records if r.actual_qty > 0),
        avg_bias=total_diff / len(records),
        bias_percent=_bias_percent(total_diff, records),
        madp=calculate_madp(forecasts, actuals),
        track=calculate_track(forecasts, actuals),
        waste_qty=sum(r.waste for r in records),
        stockout_qty=sum(r.stockout for r in records),
        waste_cost=sum(r.waste_cost for r in records),
        stockout_revenue=sum(r.stockout_revenue for r in records)
    )

def evaluate_accuracy(
    forecast_records: Iterable[Any],
    series_map: Dict[str, ProductSeries],
    products: Optional[Iterable] = None
) -> AccuracyReport:
    """Evaluate issued forecasts against realised sales.

    Args:
        forecast_records: Issued forecasts (see compare_forecasts)
        series_map: Realised sales by series key
        products: Product metadata for names and economics

    Returns:
        AccuracyReport with per-record, per-product and per-weekday figures;
        products are ordered from most to least accurate
    """
    records = compare_forecasts(forecast_records, series_map, products)

    by_product: Dict[str, List[ComparisonRecord]] = OrderedDict()
    by_weekday: Dict[str, List[ComparisonRecord]] = OrderedDict()
    for record in records:
        by_product.setdefault(record.product_id, []).append(record)
        by_weekday.setdefault(weekday_name(record.date), []).append(record)

    product_accuracy = sorted(
        (summarize_product(product_id, recs) for product_id, recs in by_product.items()),
        key=lambda p: -p.accuracy
    )

    summary = AccuracySummary(
        total_forecasts=len(records),
        days_with_data=len({r.date for r in records if r.actual_qty > 0}),
        overall_accuracy=_average_accuracy(records),
        overall_bias_percent=_bias_percent(sum(r.diff for r in records), records),
        total_waste_qty=sum(r.waste for r in records),
        total_stockout_qty=sum(r.stockout for r in records),
        total_waste_cost=sum(r.waste_cost for r in records),
        total_stockout_revenue=sum(r.stockout_revenue for r in records)
    )

    logger.info(
        f"Evaluated {summary.total_forecasts} forecasts: accuracy {summary.overall_accuracy:.1f}%, "
        f"bias {summary.overall_bias_percent:+.1f}%"
    )

    return AccuracyReport(
        records=tuple(records),
        products=tuple(product_accuracy),
        weekdays={day: _average_accuracy(recs) for day, recs in by_weekday.items()},
        summary=summary
    )


@dataclass(frozen=True)
class BiasCorrection:
    """Learned forecast bias of one product, in units (positive = over-produced)."""
    product_id: str
    market_id: Optional[str]
    avg_bias: float
    exponential_bias: float
    bias_count: int
    weekday_bias: Dict[int, float]
    adaptive_gain: float
    volatility: float
    confidence_score: float

    def correction_for(self, target_date: date) -> float:
        """Units to take off the forecast for the target date.

        Half the weekday bias (or the exponential bias when the weekday has
        too few records) plus half the exponential bias, scaled by the gain.
        """
        day_bias = self.weekday_bias.get(weekday_index(target_date), self.exponential_bias)
        return (day_bias + self.exponential_bias) / 2.0 * self.adaptive_gain

def calculate_bias_correction(
    records: Iterable[ComparisonRecord],
    product_id: str,
    market_id: Optional[str] = None,
    settings: Optional[Dict] = None
) -> Optional[BiasCorrection]:
    """Learn the bias of a product from its past forecasts.

    Only days with sales are used. A day that sold out (sales reached
    stockout_ratio of the forecast) is uncensored by stockout_uplift, since
    the true demand was higher than what could be sold. The bias is an
    exponentially weighted moving average of forecast - demand, oldest first.
    Each consecutive error in the same direction as the average adds a gain
    step, up to max_gain_steps.

    Args:
        records: Comparison records from compare_forecasts
        product_id: Series key to learn
        market_id: Only use forecasts issued for this market
        settings: Learning settings, defaults to config.learning_settings

    Returns:
        BiasCorrection, or None with fewer than min_records usable days
    """
    settings = settings or config.learning_settings

    relevant = sorted(
        (
            r for r in records
            if r.product_id == product_id
            and r.actual_qty > 0
            and (market_id is None or r.market_id == market_id)
        ),
        key=lambda r: r.date
    )
    if len(relevant) < settings['min_records']:
        return None

    demand = []
    errors = []
    for record in relevant:
        actual = record.actual_qty
        if actual >= record.forecast_qty * settings['stockout_ratio']:
            actual = math.ceil(actual * settings['stockout_uplift'])
        demand.append(actual)
        errors.append(record.forecast_qty - actual)

    alpha = settings['bias_alpha']
    ewma = float(errors[0])
    consistent = 0
    for error in errors[1:]:
        ewma = alpha * error + (1 - alpha) * ewma
        if (error > 0 and ewma > 0) or (error < 0 and ewma < 0):
            consistent += 1
        else:
            consistent = 0

    by_weekday: Dict[int, List[int]] = {}
    for record, error in zip(relevant, errors):
        by_weekday.setdefault(weekday_index(record.date), []).append(error)

    mean_demand = mean(demand)
    volatility = math.sqrt(mean([(d - mean_demand) ** 2 for d in demand]))

    confidence = min(100.0, len(relevant) * 10.0)
    if volatility > mean_demand * 0.5:
        confidence *= 0.8

    return BiasCorrection(
        product_id=product_id,
        market_id=market_id,
        avg_bias=mean(errors),
        exponential_bias=ewma,
        bias_count=len(relevant),
        weekday_bias={
            day: mean(day_errors)
            for day, day_errors in sorted(by_weekday.items())
            if len(day_errors) >= settings['min_weekday_records']
        },
        adaptive_gain=1.0 + min(consistent, settings['max_gain_steps']) * settings['gain_step'],
        volatility=volatility,
        confidence_score=round(confidence)
    )

def learn_bias_corrections(
    records: Iterable[ComparisonRecord],
    market_id: Optional[str] = None,
    settings: Optional[Dict] = None
) -> Dict[str, BiasCorrection]:
    """Bias corrections for every product with enough history."""
    records = list(records)
    corrections = OrderedDict()
    for product_id in OrderedDict.fromkeys(r.product_id for r in records):
        correction = calculate_bias_correction(records, product_id, market_id, settings)
        if correction is not None:
            corrections[product_id] = correction

    logger.info(f"Learned bias corrections for {len(corrections)} products")
    return corrections

def apply_bias_correction(
    forecast: float,
    bias: Optional[BiasCorrection],
    target_date: date
) -> float:
    """Subtract the learned bias from a forecast, never going below zero."""
    if bias is None:
        return forecast
    return max(0.0, forecast - bias.correction_for(target_date))

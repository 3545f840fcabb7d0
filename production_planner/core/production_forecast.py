# production_planner/core/production_forecast.py
import math
from datetime import date
from typing import Dict, Optional, Tuple, Union

import numpy as np
from scipy import stats

from production_planner.config import config
from production_planner.core.accuracy import BiasCorrection, apply_bias_correction
from production_planner.core.entities import (
    ConfidenceLevel, ForecastEconomics, ForecastOutput, PredictionInterval, SeasonalityMatrix
)
from production_planner.exceptions import ForecastError
from production_planner.logging_setup import get_logger
from production_planner.utils.date_utils import is_payday_window, weekday_index
from production_planner.utils.math_utils import round_to_nearest_multiple

logger = get_logger(__name__)

CRITICAL_RATIO_FLOOR = 0.5
CRITICAL_RATIO_CEILING = 0.99

def critical_ratio(
    unit_price: float,
    unit_cost: float,
    disposal_cost: float = 0.0
) -> float:
    """Newsvendor critical ratio Cu / (Cu + Co).

    Args:
        unit_price: Selling price per unit
        unit_cost: Production cost per unit
        disposal_cost: Extra cost of disposing one unsold unit

    Returns:
        Critical ratio clamped to [0.5, 0.99]
    """
    underage = max(0.0, unit_price - unit_cost)
    overage = max(0.0, unit_cost + disposal_cost)

    if underage + overage <= 0:
        return CRITICAL_RATIO_FLOOR

    ratio = underage / (underage + overage)
    return max(CRITICAL_RATIO_FLOOR, min(CRITICAL_RATIO_CEILING, ratio))

def poisson_quantile(probability: float, lam: float) -> int:
    """Smallest integer q with P(D <= q) >= probability for D ~ Poisson(lam)."""
    if lam <= 0:
        return 0

    q = int(stats.poisson.ppf(probability, lam))
    # ppf works in floating point, settle the boundary exactly on the cdf
    while stats.poisson.cdf(q, lam) < probability:
        q += 1
    while q > 0 and stats.poisson.cdf(q - 1, lam) >= probability:
        q -= 1
    return q

def stockout_probability(quantity: int, lam: float) -> float:
    """P(D > quantity)."""
    if lam <= 0:
        return 0.0
    return float(stats.poisson.sf(quantity, lam))

def waste_probability(quantity: int, lam: float) -> float:
    """P(D < quantity)."""
    if lam <= 0:
        return 1.0
    if quantity <= 0:
        return 0.0
    return float(stats.poisson.cdf(quantity - 1, lam))

def expected_overage(quantity: int, lam: float) -> float:
    """Expected unsold units E[max(Q - D, 0)]."""
    if quantity <= 0:
        return 0.0
    if lam <= 0:
        return float(quantity)

    demand = np.arange(quantity)
    return float(np.sum((quantity - demand) * stats.poisson.pmf(demand, lam)))

def expected_underage(quantity: int, lam: float) -> float:
    """Expected unmet demand E[max(D - Q, 0)]."""
    if lam <= 0:
        return 0.0
    return max(0.0, lam - quantity + expected_overage(quantity, lam))

def confidence_level(
    confidence: float,
    high_threshold: float = 0.7,
    medium_threshold: float = 0.3
) -> ConfidenceLevel:
    if confidence >= high_threshold:
        return ConfidenceLevel.HIGH
    elif confidence >= medium_threshold:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW

def seasonal_factors(
    matrix: SeasonalityMatrix,
    target_date: date,
    weather: Optional[str] = None
) -> Tuple[float, float, float]:
    """Weekday, payday and weather factors that apply on the target date."""
    day_factor = matrix.weekday_multipliers[weekday_index(target_date)]
    payday_factor = matrix.payday_multiplier if is_payday_window(target_date) else 1.0

    weather_factor = 1.0
    if weather:
        weather_factor = matrix.weather_multipliers.get(weather.strip().lower(), 1.0)

    return day_factor, payday_factor, weather_factor

def resolve_service_level(
    service_level: Union[float, str, None],
    unit_price: float,
    unit_cost: float,
    disposal_cost: float = 0.0
) -> float:
    """Turn a configured service level into a probability target.

    Raises:
        ForecastError if the target is not strictly between 0 and 1
    """
    if service_level == 'critical_ratio':
        return critical_ratio(unit_price, unit_cost, disposal_cost)

    try:
        target = float(service_level)
    except (TypeError, ValueError):
        raise ForecastError(f"Invalid service level: {service_level!r}")

    if not 0.0 < target < 1.0:
        raise ForecastError(
            f"Service level must be between 0 and 1, got {target}",
            code='INVALID_SERVICE_LEVEL'
        )

    return target

def forecast_production(
    matrix: SeasonalityMatrix,
    target_date: date,
    weather: Optional[str] = None,
    service_level: Union[float, str, None] = None,
    lot_size: Optional[int] = None,
    unit_price: float = 0.0,
    unit_cost: float = 0.0,
    disposal_cost: float = 0.0,
    product_id: str = '',
    settings: Optional[Dict] = None,
    bias: Optional[BiasCorrection] = None
) -> ForecastOutput:
    """Recommend a production quantity for one product and target date.

    Demand on the target date is modelled as Poisson with rate
    baseline * weekday * payday * weather. The quantity is the smallest
    integer whose Poisson CDF reaches the service level, rounded to the
    nearest lot. Risk figures are reported for the rounded quantity.
    A learned bias is taken off the rate before the quantity is chosen.

    Args:
        matrix: Seasonality matrix of the product
        target_date: Date to produce for
        weather: Predicted weather tag, if known
        service_level: Probability target or 'critical_ratio'
        lot_size: Production granularity in units
        unit_price: Selling price per unit
        unit_cost: Production cost per unit
        disposal_cost: Extra cost per wasted unit
        product_id: Series key, carried into the output
        settings: Forecasting settings, defaults to config.forecast_settings
        bias: Learned bias correction of the product

    Returns:
        ForecastOutput

    Raises:
        ForecastError for an invalid service level or lot size
    """
    settings = settings or config.forecast_settings

    if service_level is None:
        service_level = settings['service_level']
    if lot_size is None:
        lot_size = settings['lot_size']
    if lot_size < 0:
        raise ForecastError(f"Lot size cannot be negative, got {lot_size}", code='INVALID_LOT_SIZE')

    unit_price = max(0.0, unit_price or 0.0)
    unit_cost = max(0.0, unit_cost or 0.0)
    target = resolve_service_level(service_level, unit_price, unit_cost, disposal_cost)

    day_factor, payday_factor, weather_factor = seasonal_factors(matrix, target_date, weather)
    seasonal_forecast = matrix.baseline * day_factor * payday_factor
    lam = apply_bias_correction(seasonal_forecast * weather_factor, bias, target_date)
    if not math.isfinite(lam) or lam < 0:
        lam = 0.0

    if matrix.baseline <= 0 or lam <= 0:
        quantity = 0
        interval = PredictionInterval(lower=0, upper=0)
    else:
        quantity = poisson_quantile(target, lam)
        if lot_size > 1:
            quantity = int(round_to_nearest_multiple(quantity, lot_size))
        interval = PredictionInterval(
            lower=poisson_quantile(settings['interval_lower_quantile'], lam),
            upper=poisson_quantile(settings['interval_upper_quantile'], lam)
        )

    if quantity == 0 and lam <= 0:
        stockout, waste = 0.0, 1.0
    else:
        stockout = stockout_probability(quantity, lam)
        waste = waste_probability(quantity, lam)

    margin = max(0.0, unit_price - unit_cost)
    overage_units = expected_overage(quantity, lam)
    underage_units = expected_underage(quantity, lam)
    overage_penalty = overage_units * unit_cost
    underage_penalty = underage_units * margin

    economics = ForecastEconomics(
        unit_price=unit_price,
        unit_cost=unit_cost,
        expected_demand=lam,
        expected_sales=max(0.0, lam - underage_units),
        expected_waste=overage_units,
        overage_penalty=overage_penalty,
        underage_penalty=underage_penalty,
        expected_profit=lam * margin - overage_penalty - underage_penalty
    )

    output = ForecastOutput(
        product_id=product_id,
        target_date=target_date,
        weather=weather,
        baseline_forecast=seasonal_forecast,
        weather_adjusted_forecast=lam,
        lambda_=lam,
        optimal_quantity=quantity,
        service_level_target=target,
        stockout_probability=stockout,
        waste_probability=waste,
        prediction_interval=interval,
        confidence_level=confidence_level(
            matrix.confidence, settings['high_confidence'], settings['medium_confidence']
        ),
        outliers_removed=matrix.outliers_removed,
        data_points=matrix.data_points,
        economics=economics
    )

    logger.debug(
        f"{product_id or 'series'} {target_date}: lambda={lam:.2f} Q={quantity} "
        f"stockout={stockout:.3f} waste={waste:.3f}"
    )

    return output

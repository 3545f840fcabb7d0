# production_planner/core/seasonality.py
"""
Two-pass residual decomposition of a daily sales series into multiplicative
weekday, payday and weather factors.

Pass 1 compares each day with the mean of the observed days in its trailing
window and takes the median ratio per weekday. Pass 2 removes the weekday
effect and takes the median residual for payday-window days and for each
weather tag. Medians keep single promotion days or stock-outs from dragging
a factor.
"""
from datetime import date
from typing import Dict, List, Optional, Sequence

from production_planner.config import config
from production_planner.core.entities import ProductSeries, SeasonalityMatrix
from production_planner.logging_setup import get_logger
from production_planner.utils.date_utils import trailing_dates, weekday_index
from production_planner.utils.math_utils import median

logger = get_logger(__name__)

def trailing_baseline(
    quantities: Dict[date, int],
    anchor: date,
    window_days: int = 30,
    min_points: int = 1
) -> Optional[float]:
    """Mean quantity over the observed days strictly before the anchor.

    Days without an observation are excluded from both sum and count.

    Args:
        quantities: Quantity by date
        anchor: Date the window ends before
        window_days: Window length in calendar days
        min_points: Minimum number of observed days required

    Returns:
        Mean quantity, or None when fewer than min_points days were observed
    """
    total = 0
    count = 0
    for day in trailing_dates(anchor, window_days):
        if day in quantities:
            total += quantities[day]
            count += 1

    if count < max(1, min_points):
        return None

    return total / count

def in_open_range(value: float, low: float, high: float) -> bool:
    return low < value < high

def calculate_confidence(days_of_history: int, full_confidence_days: int = 20) -> float:
    """Linear confidence ramp reaching 1.0 at full_confidence_days sale-days."""
    if full_confidence_days <= 0:
        return 1.0
    return min(1.0, days_of_history / full_confidence_days)

def decompose(
    series: ProductSeries,
    as_of: date,
    weather_tags: Optional[Sequence[str]] = None,
    settings: Optional[Dict] = None
) -> SeasonalityMatrix:
    """Estimate the seasonality matrix of a series.

    Args:
        series: Daily series of one product or variant
        as_of: Current date, anchor of the forecast baseline
        weather_tags: Weather taxonomy to learn factors for
        settings: Forecasting settings, defaults to config.forecast_settings

    Returns:
        SeasonalityMatrix; neutral with zero confidence on thin history
    """
    settings = settings or config.forecast_settings
    if weather_tags is None:
        weather_tags = settings['weather_tags']
    known_tags = {tag.lower() for tag in weather_tags}

    window = settings['baseline_window_days']
    data_points = len(series)

    if data_points < settings['min_history_points']:
        logger.debug(f"{series.key}: {data_points} sale-days, returning neutral seasonality")
        return SeasonalityMatrix.neutral(data_points=data_points)

    quantities = series.quantity_by_date()

    # Baselines are shared by both passes
    baselines: List[Optional[float]] = [
        trailing_baseline(quantities, obs.date, window, settings['min_baseline_points'])
        for obs in series.observations
    ]

    outliers_removed = 0

    # Pass 1: weekday ratios
    weekday_samples = {i: [] for i in range(7)}
    for obs, baseline in zip(series.observations, baselines):
        if not baseline:
            continue

        ratio = obs.quantity_sold / baseline
        if in_open_range(ratio, settings['weekday_ratio_low'], settings['weekday_ratio_high']):
            weekday_samples[weekday_index(obs.date)].append(ratio)
        else:
            outliers_removed += 1

    weekday_multipliers = tuple(median(weekday_samples[i], default=1.0) for i in range(7))

    # Pass 2: payday and weather residuals
    payday_samples = []
    weather_samples: Dict[str, List[float]] = {}
    for obs, baseline in zip(series.observations, baselines):
        if not baseline:
            continue

        expected = baseline * weekday_multipliers[weekday_index(obs.date)]
        if expected <= 0:
            continue

        residual = obs.quantity_sold / expected

        if obs.is_payday_window and in_open_range(
            residual, settings['payday_residual_low'], settings['payday_residual_high']
        ):
            payday_samples.append(residual)

        if obs.weather and obs.weather in known_tags and in_open_range(
            residual, settings['weather_residual_low'], settings['weather_residual_high']
        ):
            weather_samples.setdefault(obs.weather, []).append(residual)

    payday_multiplier = median(payday_samples, default=1.0)
    weather_multipliers = {
        tag: median(samples, default=1.0)
        for tag, samples in sorted(weather_samples.items())
    }

    current_baseline = trailing_baseline(quantities, as_of, window, 1) or 0.0

    matrix = SeasonalityMatrix(
        baseline=current_baseline,
        weekday_multipliers=weekday_multipliers,
        payday_multiplier=payday_multiplier,
        weather_multipliers=weather_multipliers,
        confidence=calculate_confidence(data_points, settings['full_confidence_days']),
        data_points=data_points,
        outliers_removed=outliers_removed
    )

    logger.debug(
        f"{series.key}: baseline={matrix.baseline:.2f} payday={matrix.payday_multiplier:.2f} "
        f"weather={matrix.weather_multipliers} outliers={outliers_removed}"
    )

    return matrix

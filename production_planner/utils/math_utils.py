# production_planner/utils/math_utils.py
import math
from typing import List, Sequence, Tuple

import numpy as np

from production_planner.exceptions import CalculationError

def round_to_nearest_multiple(value: float, multiple: float) -> float:
    """Round a value to the nearest multiple, halves rounding up.

    Args:
        value: Value to round
        multiple: Multiple to round to

    Returns:
        Rounded value
    """
    if multiple <= 0:
        return value

    return math.floor(value / multiple + 0.5) * multiple

def mean(values: Sequence[float]) -> float:
    """Arithmetic mean, 0.0 for an empty sequence."""
    if not values:
        return 0.0
    return sum(values) / len(values)

def median(values: Sequence[float], default: float = 1.0) -> float:
    """Median of the values.

    Args:
        values: Sample
        default: Value returned for an empty sample

    Returns:
        Median value
    """
    if len(values) == 0:
        return default
    return float(np.median(np.asarray(values, dtype=float)))

def percent_difference(value: float, reference: float) -> float:
    """Signed percent difference of value against reference."""
    if reference == 0:
        raise CalculationError("Reference value must be non-zero")
    return (value - reference) / reference * 100.0

def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """Calculate the Pearson correlation coefficient.

    Args:
        x: First series
        y: Second series, aligned with x

    Returns:
        Correlation in [-1, 1], or 0.0 when either series has no variance
    """
    n = len(x)
    if n != len(y) or n == 0:
        return 0.0

    mean_x = sum(x) / n
    mean_y = sum(y) / n

    sxy = sum((x[i] - mean_x) * (y[i] - mean_y) for i in range(n))
    sxx = sum((xi - mean_x) ** 2 for xi in x)
    syy = sum((yi - mean_y) ** 2 for yi in y)

    if sxx == 0 or syy == 0:
        return 0.0

    r = sxy / math.sqrt(sxx * syy)
    return max(-1.0, min(1.0, r))

def linear_regression(
    x: List[float],
    y: List[float]
) -> Tuple[float, float]:
    """Calculate linear regression coefficients.

    Args:
        x: List of x values (typically day index)
        y: List of y values (typically quantity)

    Returns:
        Tuple with slope and intercept
    """
    if len(x) != len(y) or len(x) < 2:
        raise CalculationError("Invalid input for linear regression")

    n = len(x)

    mean_x = sum(x) / n
    mean_y = sum(y) / n

    numerator = sum((x[i] - mean_x) * (y[i] - mean_y) for i in range(n))
    denominator = sum((x[i] - mean_x) ** 2 for i in range(n))

    if denominator == 0:
        slope = 0.0
    else:
        slope = numerator / denominator

    intercept = mean_y - slope * mean_x

    return (slope, intercept)

def ols_slope(values: Sequence[float]) -> float:
    """OLS slope of values against their index, 0.0 for fewer than 2 points."""
    if len(values) < 2:
        return 0.0
    slope, _ = linear_regression(list(range(len(values))), list(values))
    return slope

def calculate_madp(forecasts: Sequence[float], actuals: Sequence[float]) -> float:
    """Calculate Mean Absolute Deviation Percentage of forecasts against actuals.

    Pairs with a zero forecast are skipped.

    Args:
        forecasts: Issued forecast quantities
        actuals: Realised quantities, aligned with forecasts

    Returns:
        MADP value as percentage
    """
    if len(forecasts) != len(actuals):
        raise CalculationError("Forecasts and actuals must have the same length")

    pairs = [(f, a) for f, a in zip(forecasts, actuals) if f != 0]
    if not pairs:
        return 0.0

    return sum(abs(a - f) / f * 100.0 for f, a in pairs) / len(pairs)

def calculate_track(forecasts: Sequence[float], actuals: Sequence[float]) -> float:
    """Calculate the signed tracking signal of forecasts against actuals.

    Positive values mean demand ran above forecast (stockouts), negative
    values mean forecasts ran high (waste).

    Args:
        forecasts: Issued forecast quantities
        actuals: Realised quantities, aligned with forecasts

    Returns:
        Track value as percentage in [-100, 100]
    """
    if len(forecasts) != len(actuals):
        raise CalculationError("Forecasts and actuals must have the same length")

    if not forecasts:
        return 0.0

    deviations = [a - f for f, a in zip(forecasts, actuals)]
    mad = sum(abs(d) for d in deviations) / len(deviations)

    if mad == 0:
        return 0.0

    track = sum(deviations) / (len(deviations) * mad) * 100.0

    return max(-100.0, min(100.0, track))

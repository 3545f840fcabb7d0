from .sales_series import build_product_series, build_revenue_totals, top_series_by_revenue
from .seasonality import decompose, trailing_baseline, calculate_confidence
from .production_forecast import (
    forecast_production, critical_ratio, poisson_quantile,
    stockout_probability, waste_probability, expected_overage, expected_underage
)
from .pattern_miner import mine_patterns, sort_by_severity
from .accuracy import evaluate_accuracy, compare_forecasts

__all__ = [
    'build_product_series',
    'build_revenue_totals',
    'top_series_by_revenue',
    'decompose',
    'trailing_baseline',
    'calculate_confidence',
    'forecast_production',
    'critical_ratio',
    'poisson_quantile',
    'stockout_probability',
    'waste_probability',
    'expected_overage',
    'expected_underage',
    'mine_patterns',
    'sort_by_severity',
    'evaluate_accuracy',
    'compare_forecasts'
]

from .matrix_cache import MatrixCache, history_hash
from .forecast_service import ForecastService
from .insight_service import InsightService
from .forecast_repository import ForecastRepository

__all__ = [
    'MatrixCache',
    'history_hash',
    'ForecastService',
    'InsightService',
    'ForecastRepository'
]

# production_planner/services/forecast_service.py
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Union

from production_planner.config import config
from production_planner.core.accuracy import BiasCorrection, compare_forecasts, learn_bias_corrections
from production_planner.core.entities import ForecastOutput, ProductSeries, SaleRecord, SeasonalityMatrix, index_catalogue
from production_planner.core.production_forecast import forecast_production
from production_planner.core.sales_series import build_product_series
from production_planner.core.seasonality import decompose
from production_planner.logging_setup import get_logger, log_exception, logger as log_manager
from production_planner.services.matrix_cache import MatrixCache, settings_fingerprint

# Set up logging
logger = get_logger(__name__)

class ForecastService:
    """Service for producing daily production recommendations."""

    def __init__(
        self,
        products: Optional[Iterable] = None,
        settings: Optional[Dict] = None,
        cache: Optional[MatrixCache] = None,
        max_workers: Optional[int] = None,
        bias_corrections: Optional[Dict[str, BiasCorrection]] = None
    ):
        """Initialize the forecast service.

        Args:
            products: Product metadata (Product objects or mappings)
            settings: Forecasting settings, defaults to config.forecast_settings
            cache: Matrix cache shared between runs
            max_workers: Worker threads for forecast_all, defaults to BATCH_PROCESS.max_workers
            bias_corrections: Learned bias per series key
        """
        self.settings = settings or config.forecast_settings
        self.catalogue = index_catalogue(products)
        self.cache = cache if cache is not None else MatrixCache()
        self.max_workers = max_workers if max_workers is not None else config.batch_config['max_workers']
        self.bias_corrections = dict(bias_corrections or {})
        self._fingerprint = settings_fingerprint(self.settings)

    def build_series(
        self,
        records: Iterable[Union[SaleRecord, dict]],
        market_id: Optional[str] = None
    ) -> Dict[str, ProductSeries]:
        """Group raw sale records into per-series daily observations, optionally for one market."""
        return build_product_series(records, self.settings['rain_tags'], market_id)

    def learn_from(
        self,
        forecast_records: Iterable[Any],
        series_map: Dict[str, ProductSeries],
        market_id: Optional[str] = None
    ) -> Dict[str, BiasCorrection]:
        """Learn bias corrections from past forecasts and the sales they were for.

        Args:
            forecast_records: Issued forecasts (see compare_forecasts)
            series_map: Realised sales by series key
            market_id: Only learn from forecasts issued for this market

        Returns:
            Corrections by series key; they apply to later forecasts
        """
        comparisons = compare_forecasts(forecast_records, series_map)
        learned = learn_bias_corrections(comparisons, market_id)
        self.bias_corrections.update(learned)
        return learned

    def get_seasonality(self, series: ProductSeries, as_of: date) -> SeasonalityMatrix:
        """Get the seasonality matrix of a series, from the cache when unchanged."""
        return self.cache.get_or_compute(
            series,
            as_of,
            lambda s, anchor: decompose(s, anchor, self.settings['weather_tags'], self.settings),
            self._fingerprint
        )

    def forecast_product(
        self,
        series: ProductSeries,
        target_date: date,
        as_of: Optional[date] = None,
        weather: Optional[str] = None,
        service_level: Union[float, str, None] = None,
        lot_size: Optional[int] = None
    ) -> ForecastOutput:
        """Forecast the production quantity of one series.

        Args:
            series: Daily series
            target_date: Date to produce for
            as_of: Anchor of the baseline, defaults to the target date
            weather: Predicted weather tag
            service_level: Overrides the configured service level
            lot_size: Overrides the configured lot size

        Returns:
            ForecastOutput
        """
        as_of = as_of or target_date
        matrix = self.get_seasonality(series, as_of)
        _, unit_price, unit_cost = self.catalogue.get(series.key, (series.key, 0.0, 0.0))

        return forecast_production(
            matrix,
            target_date,
            weather=weather,
            service_level=service_level,
            lot_size=lot_size,
            unit_price=unit_price,
            unit_cost=unit_cost,
            product_id=series.key,
            settings=self.settings,
            bias=self.bias_corrections.get(series.key)
        )

    def forecast_all(
        self,
        series_map: Dict[str, ProductSeries],
        target_date: date,
        as_of: Optional[date] = None,
        weather: Optional[str] = None,
        service_level: Union[float, str, None] = None,
        lot_size: Optional[int] = None
    ) -> Dict:
        """Forecast every series for the target date.

        A failing series is logged and counted; the others are still forecast.

        Args:
            series_map: Series by key
            target_date: Date to produce for
            as_of: Anchor of the baseline, defaults to the target date
            weather: Predicted weather tag
            service_level: Overrides the configured service level
            lot_size: Overrides the configured lot size

        Returns:
            Dictionary with processing results; forecasts are in series_map order
        """
        batch_info = log_manager.batch_start_log(
            'production_forecast',
            f"{len(series_map)} products for {target_date.isoformat()}"
        )

        keys = list(series_map)
        outcomes: List[Optional[ForecastOutput]] = [None] * len(keys)
        results = {
            'target_date': target_date,
            'total_products': len(keys),
            'processed': 0,
            'errors': 0,
            'error_items': [],
            'forecasts': []
        }

        def run(index: int):
            key = keys[index]
            try:
                outcomes[index] = self.forecast_product(
                    series_map[key], target_date, as_of, weather, service_level, lot_size
                )
            except Exception as e:
                log_exception(__name__, e, f"Error forecasting product {key}")
                results['error_items'].append({'product_id': key, 'error': str(e)})

        if self.max_workers > 1 and len(keys) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                list(executor.map(run, range(len(keys))))
        else:
            for index in range(len(keys)):
                run(index)

        results['forecasts'] = [outcome for outcome in outcomes if outcome is not None]
        results['processed'] = len(results['forecasts'])
        results['errors'] = len(results['error_items'])
        # Threads may finish out of order
        results['error_items'].sort(key=lambda item: keys.index(item['product_id']))

        log_manager.batch_end_log(
            batch_info,
            success=results['errors'] == 0,
            result_info={
                'processed': results['processed'],
                'errors': results['errors'],
                'cache_hits': self.cache.hits
            }
        )

        return results

    def forecast_records(
        self,
        records: Iterable[Union[SaleRecord, dict]],
        target_date: date,
        market_id: Optional[str] = None,
        **kwargs
    ) -> Dict:
        """Build series from raw sale records and forecast all of them."""
        return self.forecast_all(self.build_series(records, market_id), target_date, **kwargs)

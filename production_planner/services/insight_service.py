# production_planner/services/insight_service.py
from collections import Counter
from typing import Dict, Iterable, List, Optional, Union

from production_planner.config import config
from production_planner.core.entities import Pattern, ProductSeries, SaleRecord
from production_planner.core.pattern_miner import mine_patterns
from production_planner.core.sales_series import build_product_series
from production_planner.exceptions import PatternMiningError
from production_planner.logging_setup import get_logger, log_exception, logger as log_manager

logger = get_logger(__name__)

class InsightService:
    """Service for mining sales insights across the catalogue."""

    def __init__(
        self,
        products: Optional[Iterable] = None,
        settings: Optional[Dict] = None
    ):
        """Initialize the insight service.

        Args:
            products: Product metadata used for display names
            settings: Pattern mining settings, defaults to config.pattern_settings
        """
        self.products = list(products or ())
        self.settings = settings or config.pattern_settings

    def mine(
        self,
        series_map: Dict[str, ProductSeries],
        max_products: Optional[int] = None
    ) -> List[Pattern]:
        """Mine patterns from every series.

        Args:
            series_map: Series by key
            max_products: Optional top-K revenue limit

        Returns:
            Patterns, CRITICAL first

        Raises:
            PatternMiningError if mining fails
        """
        batch_info = log_manager.batch_start_log('pattern_mining', f"{len(series_map)} products")

        try:
            patterns = mine_patterns(series_map, self.products, self.settings, max_products)
        except Exception as e:
            log_exception(__name__, e, "Pattern mining failed")
            log_manager.batch_end_log(batch_info, success=False)
            raise PatternMiningError(f"Pattern mining failed: {str(e)}")

        log_manager.batch_end_log(batch_info, success=True, result_info=self.summarize(patterns))

        return patterns

    def mine_records(
        self,
        records: Iterable[Union[SaleRecord, dict]],
        max_products: Optional[int] = None
    ) -> List[Pattern]:
        """Build series from raw sale records and mine them."""
        return self.mine(build_product_series(records, self.settings['rain_tags']), max_products)

    @staticmethod
    def summarize(patterns: List[Pattern]) -> Dict:
        """Count patterns by severity and type.

        Returns:
            Dictionary with total, by_severity and by_type counts
        """
        return {
            'total': len(patterns),
            'by_severity': dict(Counter(p.severity.value for p in patterns)),
            'by_type': dict(Counter(p.type.value for p in patterns))
        }

# production_planner/services/forecast_repository.py
from datetime import date
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from production_planner.core.entities import ForecastOutput
from production_planner.exceptions import DatabaseError
from production_planner.logging_setup import get_logger
from production_planner.models import ProductionForecastRecord

logger = get_logger(__name__)

class ForecastRepository:
    """Persistence of issued production forecasts."""

    def __init__(self, session: Session):
        """Initialize the repository.

        Args:
            session: Database session
        """
        self.session = session

    def save_forecast(
        self,
        forecast: ForecastOutput,
        market_id: Optional[str] = None
    ) -> ProductionForecastRecord:
        """Insert a forecast, or update the one already issued for the same
        product, market and date.

        Args:
            forecast: Forecast to store
            market_id: Market the forecast was issued for, None for all markets

        Returns:
            Stored record

        Raises:
            DatabaseError if the record cannot be written
        """
        market_key = market_id or ''

        try:
            record = self.session.query(ProductionForecastRecord).filter(
                ProductionForecastRecord.product_id == forecast.product_id,
                ProductionForecastRecord.market_id == market_key,
                ProductionForecastRecord.forecast_for_date == forecast.target_date
            ).first()

            if record is None:
                record = ProductionForecastRecord(
                    product_id=forecast.product_id,
                    market_id=market_key,
                    forecast_for_date=forecast.target_date
                )
                self.session.add(record)
                logger.debug(f"Inserting forecast for {forecast.product_id} on {forecast.target_date}")
            else:
                logger.debug(f"Updating forecast for {forecast.product_id} on {forecast.target_date}")

            record.optimal_quantity = forecast.optimal_quantity
            record.baseline_forecast = forecast.baseline_forecast
            record.weather_adjusted_forecast = forecast.weather_adjusted_forecast
            record.lambda_value = forecast.lambda_
            record.weather = forecast.weather
            record.service_level_target = forecast.service_level_target
            record.stockout_probability = forecast.stockout_probability
            record.waste_probability = forecast.waste_probability
            record.interval_lower = forecast.prediction_interval.lower
            record.interval_upper = forecast.prediction_interval.upper
            record.confidence_level = forecast.confidence_level.value
            record.data_points = forecast.data_points
            record.unit_price = forecast.economics.unit_price
            record.unit_cost = forecast.economics.unit_cost
            record.expected_profit = forecast.economics.expected_profit

            self.session.commit()
            return record
        except SQLAlchemyError as e:
            self.session.rollback()
            raise DatabaseError(f"Failed to save forecast for {forecast.product_id}: {str(e)}")

    def save_forecasts(self, forecasts: List[ForecastOutput], market_id: Optional[str] = None) -> int:
        """Save a batch of forecasts.

        Returns:
            Number of forecasts saved
        """
        for forecast in forecasts:
            self.save_forecast(forecast, market_id)
        return len(forecasts)

    def get_forecasts(
        self,
        product_id: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        market_id: Optional[str] = None
    ) -> List[ProductionForecastRecord]:
        """Get stored forecasts.

        Args:
            product_id: Optional series key filter
            start_date: Optional first forecast date (inclusive)
            end_date: Optional last forecast date (inclusive)
            market_id: Optional market filter

        Returns:
            Records ordered by date and product

        Raises:
            DatabaseError if the query fails
        """
        try:
            query = self.session.query(ProductionForecastRecord)

            if product_id:
                query = query.filter(ProductionForecastRecord.product_id == product_id)

            if market_id is not None:
                query = query.filter(ProductionForecastRecord.market_id == market_id)

            if start_date:
                query = query.filter(ProductionForecastRecord.forecast_for_date >= start_date)

            if end_date:
                query = query.filter(ProductionForecastRecord.forecast_for_date <= end_date)

            return query.order_by(
                ProductionForecastRecord.forecast_for_date,
                ProductionForecastRecord.product_id
            ).all()
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to load forecasts: {str(e)}")

# production_planner/models.py
from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Index, UniqueConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

class ProductionForecastRecord(Base):
    """Model for issued production forecasts, one per product, market and date."""
    __tablename__ = 'production_forecasts'

    id = Column(Integer, primary_key=True)
    product_id = Column(String(64), nullable=False)
    # Empty string stands for "all markets" so the unique constraint holds
    market_id = Column(String(64), nullable=False, default='')
    forecast_for_date = Column(Date, nullable=False)

    # Forecast values
    optimal_quantity = Column(Integer, default=0)
    baseline_forecast = Column(Float, default=0.0)
    weather_adjusted_forecast = Column(Float, default=0.0)
    lambda_value = Column(Float, default=0.0)
    weather = Column(String(20))

    # Risk
    service_level_target = Column(Float, default=0.0)
    stockout_probability = Column(Float, default=0.0)
    waste_probability = Column(Float, default=0.0)
    interval_lower = Column(Integer, default=0)
    interval_upper = Column(Integer, default=0)
    confidence_level = Column(String(10))
    data_points = Column(Integer, default=0)

    # Economics
    unit_price = Column(Float, default=0.0)
    unit_cost = Column(Float, default=0.0)
    expected_profit = Column(Float, default=0.0)

    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('product_id', 'market_id', 'forecast_for_date', name='uq_production_forecast'),
        # Index for date range lookups
        Index('idx_production_forecast_date', 'forecast_for_date'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'product_id': self.product_id,
            'market_id': self.market_id or None,
            'forecast_for_date': self.forecast_for_date.isoformat() if self.forecast_for_date else None,
            'optimal_quantity': self.optimal_quantity,
            'baseline_forecast': self.baseline_forecast,
            'weather_adjusted_forecast': self.weather_adjusted_forecast,
            'lambda': self.lambda_value,
            'weather': self.weather,
            'service_level_target': self.service_level_target,
            'stockout_probability': self.stockout_probability,
            'waste_probability': self.waste_probability,
            'prediction_interval': {'lower': self.interval_lower, 'upper': self.interval_upper},
            'confidence_level': self.confidence_level,
            'data_points': self.data_points,
            'expected_profit': self.expected_profit
        }

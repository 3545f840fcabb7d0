"""
Value objects exchanged between the sales series builder, the seasonality
decomposer, the production forecaster and the pattern miner.

All objects are frozen; callers own them and components never keep
references between calls.
"""
import enum
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from production_planner.exceptions import ValidationError
from production_planner.utils.date_utils import convert_to_date


class ConfidenceLevel(enum.Enum):
    """Confidence bucket of a production forecast."""
    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'

    def __str__(self):
        return self.value


class PatternType(enum.Enum):
    """Kinds of mined sales patterns."""
    CONDITION_SENSITIVITY = 'CONDITION_SENSITIVITY'
    TREND_ALERT = 'TREND_ALERT'
    CORRELATION_SYNERGY = 'CORRELATION_SYNERGY'
    CORRELATION_CANNIBALIZATION = 'CORRELATION_CANNIBALIZATION'
    CONTEXTUAL_SYNERGY = 'CONTEXTUAL_SYNERGY'
    INTRODUCTION_CANNIBALIZATION = 'INTRODUCTION_CANNIBALIZATION'

    def __str__(self):
        return self.value


class Severity(enum.Enum):
    """Pattern severity, ordered by rank."""
    LOW = 'LOW'
    MEDIUM = 'MEDIUM'
    HIGH = 'HIGH'
    CRITICAL = 'CRITICAL'

    def __str__(self):
        return self.value

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def from_string(cls, value: str) -> 'Severity':
        """Create a Severity from its name.

        Raises:
            ValueError if the string value is not valid
        """
        try:
            return cls(value.upper())
        except (ValueError, AttributeError):
            raise ValueError(f"Invalid severity: {value}. Valid values are: LOW, MEDIUM, HIGH, CRITICAL")


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


def _pick(data: Dict[str, Any], *keys, default=None):
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


@dataclass(frozen=True)
class SaleRecord:
    """One raw sale-log row as supplied by the point of sale."""
    product_id: str
    sale_date: date
    quantity_sold: int
    total_revenue: float = 0.0
    variant_id: Optional[str] = None
    weather_condition: Optional[str] = None
    market_id: Optional[str] = None

    @property
    def series_key(self) -> str:
        return self.variant_id or self.product_id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SaleRecord':
        """Build a record from a snake_case or camelCase mapping.

        Raises:
            ValidationError if the mapping does not describe a usable sale
        """
        # Imported here to keep validation free of entity imports
        from production_planner.utils.validation import validate_sale_record

        errors = validate_sale_record(data)
        if errors:
            raise ValidationError("Invalid sale record", details=errors)

        weather = _pick(data, 'weather_condition', 'weatherCondition')
        market = _pick(data, 'market_id', 'marketId')
        return cls(
            product_id=str(_pick(data, 'product_id', 'productId')),
            variant_id=_pick(data, 'variant_id', 'variantId') or None,
            sale_date=convert_to_date(_pick(data, 'sale_date', 'saleDate')),
            quantity_sold=int(float(_pick(data, 'quantity_sold', 'quantitySold'))),
            total_revenue=float(_pick(data, 'total_revenue', 'totalRevenue', default=0.0)),
            weather_condition=weather.strip().lower() if isinstance(weather, str) and weather.strip() else None,
            market_id=str(market) if market is not None else None
        )


@dataclass(frozen=True)
class ProductVariant:
    id: str
    name: str
    price: float = 0.0
    cost: float = 0.0


@dataclass(frozen=True)
class Product:
    """Product metadata used for naming and economics."""
    id: str
    name: str
    price: float = 0.0
    cost: float = 0.0
    variants: Tuple[ProductVariant, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Product':
        variants = tuple(
            ProductVariant(
                id=str(v['id']),
                name=str(v.get('name', v['id'])),
                price=float(v.get('price') or data.get('price') or 0.0),
                cost=float(v.get('cost') or data.get('cost') or 0.0)
            )
            for v in data.get('variants') or ()
        )
        return cls(
            id=str(data['id']),
            name=str(data.get('name', data['id'])),
            price=float(data.get('price') or 0.0),
            cost=float(data.get('cost') or 0.0),
            variants=variants
        )


def index_catalogue(products) -> Dict[str, Tuple[str, float, float]]:
    """Map every series key (product or variant id) to (name, price, cost)."""
    catalogue = {}
    for product in products or ():
        if isinstance(product, dict):
            product = Product.from_dict(product)
        catalogue[product.id] = (product.name, product.price, product.cost)
        for variant in product.variants:
            catalogue[variant.id] = (f"{product.name} - {variant.name}", variant.price, variant.cost)
    return catalogue


@dataclass(frozen=True)
class DailyObservation:
    """One product, one calendar day."""
    date: date
    quantity_sold: int
    revenue: float
    weather: Optional[str]
    is_rainy: bool
    is_payday_window: bool
    is_weekend: bool


@dataclass(frozen=True)
class ProductSeries:
    """Date-ordered daily observations for one series key."""
    key: str
    observations: Tuple[DailyObservation, ...]

    def __len__(self):
        return len(self.observations)

    @property
    def dates(self) -> List[date]:
        return [obs.date for obs in self.observations]

    @property
    def quantities(self) -> List[int]:
        return [obs.quantity_sold for obs in self.observations]

    @property
    def total_revenue(self) -> float:
        return sum(obs.revenue for obs in self.observations)

    def quantity_by_date(self) -> Dict[date, int]:
        return {obs.date: obs.quantity_sold for obs in self.observations}


@dataclass(frozen=True)
class SeasonalityMatrix:
    """Multiplicative seasonal factors for one series."""
    baseline: float
    weekday_multipliers: Tuple[float, ...] = (1.0,) * 7
    payday_multiplier: float = 1.0
    weather_multipliers: Dict[str, float] = field(default_factory=dict)
    confidence: float = 0.0
    data_points: int = 0
    outliers_removed: int = 0

    @classmethod
    def neutral(cls, baseline: float = 0.0, data_points: int = 0) -> 'SeasonalityMatrix':
        return cls(baseline=baseline, data_points=data_points)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['weekday_multipliers'] = list(self.weekday_multipliers)
        return data


@dataclass(frozen=True)
class PredictionInterval:
    lower: int
    upper: int


@dataclass(frozen=True)
class ForecastEconomics:
    """Expected economics of producing the recommended quantity."""
    unit_price: float
    unit_cost: float
    expected_demand: float
    expected_sales: float
    expected_waste: float
    overage_penalty: float
    underage_penalty: float
    expected_profit: float


@dataclass(frozen=True)
class ForecastOutput:
    """Production recommendation for one series and target date."""
    product_id: str
    target_date: date
    weather: Optional[str]
    baseline_forecast: float
    weather_adjusted_forecast: float
    lambda_: float
    optimal_quantity: int
    service_level_target: float
    stockout_probability: float
    waste_probability: float
    prediction_interval: PredictionInterval
    confidence_level: ConfidenceLevel
    outliers_removed: int
    data_points: int
    economics: ForecastEconomics

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['target_date'] = self.target_date.isoformat()
        data['confidence_level'] = self.confidence_level.value
        data['lambda'] = data.pop('lambda_')
        return data


@dataclass(frozen=True)
class Pattern:
    """One mined, human-readable sales insight."""
    type: PatternType
    severity: Severity
    target_product_id: str
    target_product_name: str
    dimensions: Dict[str, str]
    metric_label: str
    metric_value: float
    description: str
    actionable_advice: str
    related_product_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['type'] = self.type.value
        data['severity'] = self.severity.value
        return data

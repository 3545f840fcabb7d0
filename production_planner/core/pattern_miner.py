# production_planner/core/pattern_miner.py
"""
Pattern mining over per-product daily series.

Four independent analyses run per product: condition sensitivity (rain,
payday), week-over-week trend, global co-movement with every other product
and context-restricted co-movement (Friday, weekend, rainy day). Each one is
skipped silently when its sample is too small. Results from all products are
pooled and ordered by severity.
"""
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from production_planner.config import config
from production_planner.core.entities import (
    DailyObservation, Pattern, PatternType, ProductSeries, Severity, index_catalogue
)
from production_planner.core.sales_series import top_series_by_revenue
from production_planner.logging_setup import get_logger
from production_planner.utils.date_utils import is_friday
from production_planner.utils.math_utils import mean, ols_slope, pearson_correlation, percent_difference

logger = get_logger(__name__)

Context = Tuple[str, Callable[[DailyObservation], bool]]

CONTEXTS: Tuple[Context, ...] = (
    ('Friday', lambda obs: is_friday(obs.date)),
    ('Weekend', lambda obs: obs.is_weekend),
    ('Rainy Day', lambda obs: obs.is_rainy),
)

def sort_by_severity(patterns: Iterable[Pattern]) -> List[Pattern]:
    """Order patterns CRITICAL first; equal severities keep discovery order."""
    return sorted(patterns, key=lambda p: -p.severity.rank)

def _split_mean(
    observations: Sequence[DailyObservation],
    predicate: Callable[[DailyObservation], bool]
) -> Tuple[List[int], List[int]]:
    matching, other = [], []
    for obs in observations:
        (matching if predicate(obs) else other).append(obs.quantity_sold)
    return matching, other

def analyze_condition_sensitivity(
    series: ProductSeries,
    name: str,
    settings: Dict
) -> List[Pattern]:
    """Detect rain-sensitive and payday-driven products.

    Args:
        series: Daily series of the product
        name: Display name
        settings: Pattern mining settings

    Returns:
        List of CONDITION_SENSITIVITY patterns
    """
    patterns = []
    quantities = series.quantities
    if not quantities or mean(quantities) < settings['min_average_quantity']:
        return patterns

    min_days = settings['min_group_days']

    rainy, dry = _split_mean(series.observations, lambda obs: obs.is_rainy)
    if len(rainy) >= min_days and len(dry) >= min_days and mean(dry) > 0:
        diff = percent_difference(mean(rainy), mean(dry))
        if diff < settings['rain_drop_threshold']:
            severity = Severity.HIGH if diff < settings['rain_drop_escalation'] else Severity.MEDIUM
            patterns.append(Pattern(
                type=PatternType.CONDITION_SENSITIVITY,
                severity=severity,
                target_product_id=series.key,
                target_product_name=name,
                dimensions={'condition': 'rain'},
                metric_label='Impact',
                metric_value=diff,
                description=f"Sales of {name} drop {abs(diff):.0f}% on rainy days",
                actionable_advice=f"Cut production by {abs(diff * 0.8):.0f}% when rain is forecast"
            ))

    payday, normal = _split_mean(series.observations, lambda obs: obs.is_payday_window)
    if len(payday) >= min_days and len(normal) >= min_days and mean(normal) > 0:
        diff = percent_difference(mean(payday), mean(normal))
        if diff > settings['payday_boost_threshold']:
            severity = Severity.HIGH if diff > settings['payday_boost_escalation'] else Severity.MEDIUM
            patterns.append(Pattern(
                type=PatternType.CONDITION_SENSITIVITY,
                severity=severity,
                target_product_id=series.key,
                target_product_name=name,
                dimensions={'condition': 'payday'},
                metric_label='Boost',
                metric_value=diff,
                description=f"Sales of {name} rise {diff:.0f}% in the payday window",
                actionable_advice=f"Stock {diff:.0f}% more between the 25th and the 5th"
            ))

    return patterns

def analyze_trend(
    series: ProductSeries,
    name: str,
    settings: Dict
) -> List[Pattern]:
    """Compare the latest observations with the ones before them.

    The week-over-week change is the reported metric; the OLS slope of the
    whole series has to point the same way before anything is flagged.

    Args:
        series: Daily series of the product
        name: Display name
        settings: Pattern mining settings

    Returns:
        List with at most one TREND_ALERT pattern
    """
    window = settings['trend_window']
    quantities = series.quantities

    recent = quantities[-window:]
    previous = quantities[-2 * window:-window]

    if len(previous) < settings['trend_min_prior_points']:
        return []

    avg_previous = mean(previous)
    if avg_previous == 0:
        return []

    change = percent_difference(mean(recent), avg_previous)
    slope = ols_slope(quantities)
    threshold = settings['trend_change_threshold']
    escalation = settings['trend_change_escalation']

    if change < -threshold and slope < 0:
        return [Pattern(
            type=PatternType.TREND_ALERT,
            severity=Severity.CRITICAL if change < -escalation else Severity.HIGH,
            target_product_id=series.key,
            target_product_name=name,
            dimensions={'direction': 'declining'},
            metric_label='Drop',
            metric_value=change,
            description=f"Sales of {name} fell {abs(change):.0f}% over the last {len(recent)} sale-days",
            actionable_advice="Run a promotion or lower the standing production quantity"
        )]
    elif change > threshold and slope > 0:
        return [Pattern(
            type=PatternType.TREND_ALERT,
            severity=Severity.HIGH if change > escalation else Severity.MEDIUM,
            target_product_id=series.key,
            target_product_name=name,
            dimensions={'direction': 'rising'},
            metric_label='Growth',
            metric_value=change,
            description=f"Sales of {name} grew {change:.0f}% over the last {len(recent)} sale-days",
            actionable_advice="Raise production before the product sells out"
        )]

    return []

def aligned_quantities(
    target: Dict[date, int],
    other: Dict[date, int],
    dates: Optional[Iterable[date]] = None
) -> Tuple[List[int], List[int]]:
    """Quantities of both series on the dates they share, in date order."""
    candidates = target.keys() if dates is None else dates
    common = sorted(d for d in candidates if d in target and d in other)
    return [target[d] for d in common], [other[d] for d in common]

def analyze_correlations(
    series: ProductSeries,
    name: str,
    others: Sequence[ProductSeries],
    names: Dict[str, str],
    settings: Dict
) -> List[Pattern]:
    """Find the product whose daily sales move most strongly with this one.

    Args:
        series: Daily series of the product
        name: Display name
        others: Every series in the run (the product itself is skipped)
        names: Display names by series key
        settings: Pattern mining settings

    Returns:
        List with at most one CORRELATION_SYNERGY or CORRELATION_CANNIBALIZATION pattern
    """
    target = series.quantity_by_date()
    candidates = []

    for other in others:
        if other.key == series.key:
            continue

        x, y = aligned_quantities(target, other.quantity_by_date())
        if len(x) < settings['correlation_min_overlap']:
            continue

        r = pearson_correlation(x, y)
        other_name = names.get(other.key, other.key)

        if r > settings['synergy_threshold']:
            candidates.append(Pattern(
                type=PatternType.CORRELATION_SYNERGY,
                severity=Severity.MEDIUM,
                target_product_id=series.key,
                target_product_name=name,
                dimensions={'related_product': other_name},
                metric_label='Correlation',
                metric_value=r,
                description=f"{name} sells well on the same days as {other_name} (r={r:.2f})",
                actionable_advice=f"Bundle or shelve {name} next to {other_name}",
                related_product_id=other.key
            ))
        elif r < settings['cannibalization_threshold']:
            candidates.append(Pattern(
                type=PatternType.CORRELATION_CANNIBALIZATION,
                severity=Severity.HIGH,
                target_product_id=series.key,
                target_product_name=name,
                dimensions={'related_product': other_name},
                metric_label='Correlation',
                metric_value=r,
                description=f"{name} sells poorly on days {other_name} sells well (r={r:.2f})",
                actionable_advice=f"Avoid producing large batches of {name} and {other_name} together",
                related_product_id=other.key
            ))

    if not candidates:
        return []

    return [sorted(candidates, key=lambda p: -abs(p.metric_value))[0]]

def is_contextual_lift(r_context: float, r_global: float, settings: Dict) -> bool:
    """Whether a context-restricted correlation beats the global one enough."""
    return (
        r_context > settings['context_min_correlation']
        and r_context > r_global + settings['context_lift_threshold']
    )

def analyze_contextual_correlations(
    series: ProductSeries,
    name: str,
    others: Sequence[ProductSeries],
    names: Dict[str, str],
    settings: Dict,
    contexts: Sequence[Context] = CONTEXTS
) -> List[Pattern]:
    """Find pairs that only sell together in a specific context.

    Args:
        series: Daily series of the product
        name: Display name
        others: Every series in the run (the product itself is skipped)
        names: Display names by series key
        settings: Pattern mining settings
        contexts: (label, predicate) pairs restricting the dates

    Returns:
        List with at most one CONTEXTUAL_SYNERGY pattern, the highest lift
    """
    min_overlap = settings['context_min_overlap']
    target = series.quantity_by_date()
    global_r: Dict[str, float] = {}
    candidates = []

    for label, predicate in contexts:
        context_dates = [obs.date for obs in series.observations if predicate(obs)]
        if len(context_dates) < min_overlap:
            continue

        for other in others:
            if other.key == series.key:
                continue

            other_map = other.quantity_by_date()
            x, y = aligned_quantities(target, other_map, context_dates)
            if len(x) < min_overlap:
                continue

            r_context = pearson_correlation(x, y)
            if other.key not in global_r:
                global_r[other.key] = pearson_correlation(*aligned_quantities(target, other_map))
            r_global = global_r[other.key]

            if not is_contextual_lift(r_context, r_global, settings):
                continue

            other_name = names.get(other.key, other.key)
            candidates.append(Pattern(
                type=PatternType.CONTEXTUAL_SYNERGY,
                severity=Severity.HIGH,
                target_product_id=series.key,
                target_product_name=name,
                dimensions={'context': label, 'related_product': other_name},
                metric_label='Correlation Lift',
                metric_value=(r_context - r_global) * 100.0,
                description=(
                    f"{name} and {other_name} rarely move together (r={r_global:.2f}) "
                    f"but do on {label} (r={r_context:.2f})"
                ),
                actionable_advice=f"Pair {name} with {other_name} in displays or promotions on {label}",
                related_product_id=other.key
            ))

    if not candidates:
        return []

    return [sorted(candidates, key=lambda p: -p.metric_value)[0]]

def analyze_introduction_impact(
    series_map: Dict[str, ProductSeries],
    names: Dict[str, str],
    settings: Dict
) -> List[Pattern]:
    """Flag older products whose sales dropped after a newer product launched.

    Args:
        series_map: Series by key
        names: Display names by series key
        settings: Pattern mining settings

    Returns:
        List of INTRODUCTION_CANNIBALIZATION patterns targeting the affected product
    """
    patterns = []
    first_sale = {key: s.observations[0].date for key, s in series_map.items() if len(s)}

    for new_key, intro_date in first_sale.items():
        new_name = names.get(new_key, new_key)

        for old_key, old_first in first_sale.items():
            if old_key == new_key or old_first >= intro_date:
                continue

            old = series_map[old_key]
            before = [obs.quantity_sold for obs in old.observations if obs.date < intro_date]
            after = [obs.quantity_sold for obs in old.observations if obs.date >= intro_date]

            if len(before) < settings['introduction_min_days_before']:
                continue
            if len(after) < settings['introduction_min_days_after']:
                continue

            avg_before = mean(before)
            if avg_before == 0:
                continue

            change = percent_difference(mean(after), avg_before)
            if change >= settings['introduction_drop_threshold']:
                continue

            old_name = names.get(old_key, old_key)
            severity = Severity.CRITICAL if change < settings['introduction_drop_escalation'] else Severity.HIGH
            patterns.append(Pattern(
                type=PatternType.INTRODUCTION_CANNIBALIZATION,
                severity=severity,
                target_product_id=old_key,
                target_product_name=old_name,
                dimensions={'new_product': new_name, 'introduced_on': intro_date.isoformat()},
                metric_label='Drop',
                metric_value=change,
                description=(
                    f"Since {new_name} launched on {intro_date.isoformat()}, {old_name} fell "
                    f"{abs(change):.0f}% ({avg_before:.1f} -> {mean(after):.1f} per day)"
                ),
                actionable_advice=f"Reduce {old_name} production while {new_name} is on sale",
                related_product_id=new_key
            ))

    return patterns

def mine_patterns(
    series_map: Dict[str, ProductSeries],
    products: Optional[Iterable] = None,
    settings: Optional[Dict] = None,
    max_products: Optional[int] = None
) -> List[Pattern]:
    """Mine behavioural patterns from every series.

    Args:
        series_map: Series by key, as built by build_product_series
        products: Product metadata (Product objects or mappings) for names
        settings: Pattern mining settings, defaults to config.pattern_settings
        max_products: Keep only the top-K series by revenue (0 = all);
                      overrides settings['max_products']

    Returns:
        Patterns of all products, CRITICAL first
    """
    settings = settings or config.pattern_settings
    if max_products is None:
        max_products = settings.get('max_products', 0)

    selected = top_series_by_revenue(series_map, max_products)
    if len(selected) < len(series_map):
        logger.info(f"Pattern mining limited to {len(selected)} of {len(series_map)} products by revenue")

    catalogue = index_catalogue(products)
    names = {key: catalogue.get(key, (key,))[0] for key in selected}
    others = list(selected.values())

    patterns: List[Pattern] = []
    for key, series in selected.items():
        name = names[key]
        patterns.extend(analyze_condition_sensitivity(series, name, settings))
        patterns.extend(analyze_trend(series, name, settings))
        patterns.extend(analyze_correlations(series, name, others, names, settings))
        patterns.extend(analyze_contextual_correlations(series, name, others, names, settings))

    if settings.get('introduction_impact'):
        patterns.extend(analyze_introduction_impact(selected, names, settings))

    logger.debug(f"Mined {len(patterns)} patterns from {len(selected)} products")

    return sort_by_severity(patterns)

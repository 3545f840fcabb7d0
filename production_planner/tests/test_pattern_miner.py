"""
Tests for the pattern miner scenarios.
"""
import unittest
from datetime import date, timedelta

from production_planner.config import config
from production_planner.core.entities import Pattern, PatternType, Severity
from production_planner.core.pattern_miner import (
    analyze_condition_sensitivity,
    analyze_contextual_correlations,
    analyze_trend,
    is_contextual_lift,
    mine_patterns,
    sort_by_severity
)
from production_planner.core.sales_series import build_product_series
from production_planner.utils.math_utils import pearson_correlation


def records_for(key, start, quantities, weather=None, price=10.0):
    """Sale records for consecutive days starting at `start`."""
    records = []
    for offset, quantity in enumerate(quantities):
        records.append({
            'product_id': key,
            'sale_date': (start + timedelta(days=offset)).isoformat(),
            'quantity_sold': quantity,
            'total_revenue': quantity * price,
            'weather_condition': weather[offset] if weather else None
        })
    return records


def of_type(patterns, pattern_type):
    return [p for p in patterns if p.type == pattern_type]


class TestConditionSensitivity(unittest.TestCase):

    def setUp(self):
        self.settings = dict(config.pattern_settings)

    def rain_series(self, rainy_quantity):
        # 2024-03-10..17 stays clear of the payday window
        weather = ['sunny'] * 5 + ['rain'] * 3
        records = records_for('BREAD', date(2024, 3, 10), [10] * 5 + [rainy_quantity] * 3, weather)
        return build_product_series(records)['BREAD']

    def test_heavy_rain_drop_is_high(self):
        patterns = analyze_condition_sensitivity(self.rain_series(4), 'Bread', self.settings)

        self.assertEqual(len(patterns), 1)
        pattern = patterns[0]
        self.assertEqual(pattern.type, PatternType.CONDITION_SENSITIVITY)
        self.assertEqual(pattern.severity, Severity.HIGH)
        self.assertEqual(pattern.dimensions, {'condition': 'rain'})
        self.assertAlmostEqual(pattern.metric_value, -60.0)

    def test_moderate_rain_drop_is_medium(self):
        patterns = analyze_condition_sensitivity(self.rain_series(6), 'Bread', self.settings)

        self.assertEqual(len(patterns), 1)
        self.assertEqual(patterns[0].severity, Severity.MEDIUM)
        self.assertAlmostEqual(patterns[0].metric_value, -40.0)

    def test_exact_half_drop_is_medium(self):
        patterns = analyze_condition_sensitivity(self.rain_series(5), 'Bread', self.settings)
        self.assertEqual(patterns[0].severity, Severity.MEDIUM)

    def test_small_rain_drop_is_ignored(self):
        self.assertEqual(analyze_condition_sensitivity(self.rain_series(9), 'Bread', self.settings), [])

    def test_too_few_rainy_days(self):
        weather = ['sunny'] * 6 + ['rain'] * 2
        series = build_product_series(records_for('BREAD', date(2024, 3, 10), [10] * 6 + [2] * 2, weather))['BREAD']
        self.assertEqual(analyze_condition_sensitivity(series, 'Bread', self.settings), [])

    def test_slow_movers_are_skipped(self):
        weather = ['sunny'] * 5 + ['rain'] * 3
        series = build_product_series(records_for('CAKE', date(2024, 3, 10), [1] * 5 + [0] * 3, weather))['CAKE']
        self.assertEqual(analyze_condition_sensitivity(series, 'Cake', self.settings), [])

    def test_payday_boost(self):
        records = (
            records_for('BUN', date(2024, 3, 1), [15] * 5)     # payday window
            + records_for('BUN', date(2024, 3, 10), [10] * 5)  # normal days
        )
        series = build_product_series(records)['BUN']

        patterns = analyze_condition_sensitivity(series, 'Bun', self.settings)

        self.assertEqual(len(patterns), 1)
        self.assertEqual(patterns[0].dimensions, {'condition': 'payday'})
        self.assertEqual(patterns[0].severity, Severity.HIGH)
        self.assertAlmostEqual(patterns[0].metric_value, 50.0)


class TestTrend(unittest.TestCase):

    def setUp(self):
        self.settings = dict(config.pattern_settings)

    def trend(self, previous, recent):
        records = records_for('PIE', date(2024, 3, 6), [previous] * 7 + [recent] * 7)
        return analyze_trend(build_product_series(records)['PIE'], 'Pie', self.settings)

    def test_dying_star(self):
        patterns = self.trend(10, 5)

        self.assertEqual(len(patterns), 1)
        self.assertEqual(patterns[0].type, PatternType.TREND_ALERT)
        self.assertEqual(patterns[0].severity, Severity.CRITICAL)
        self.assertEqual(patterns[0].dimensions, {'direction': 'declining'})
        self.assertAlmostEqual(patterns[0].metric_value, -50.0)

    def test_moderate_decline_is_high(self):
        self.assertEqual(self.trend(10, 7)[0].severity, Severity.HIGH)

    def test_rising_star(self):
        strong = self.trend(10, 15)
        self.assertEqual(strong[0].severity, Severity.HIGH)
        self.assertEqual(strong[0].dimensions, {'direction': 'rising'})

        moderate = self.trend(10, 13)
        self.assertEqual(moderate[0].severity, Severity.MEDIUM)

    def test_stable_sales(self):
        self.assertEqual(self.trend(10, 10), [])
        self.assertEqual(self.trend(10, 9), [])

    def test_short_prior_window(self):
        records = records_for('PIE', date(2024, 3, 6), [10, 10, 5, 5, 5, 5, 5, 5, 5])
        self.assertEqual(analyze_trend(build_product_series(records)['PIE'], 'Pie', self.settings), [])

    def test_dying_star_through_mine_patterns(self):
        series_map = build_product_series(records_for('PIE', date(2024, 3, 6), [10] * 7 + [5] * 7))
        patterns = mine_patterns(series_map, [{'id': 'PIE', 'name': 'Apple Pie'}], self.settings)

        self.assertEqual(len(patterns), 1)
        self.assertEqual(patterns[0].target_product_name, 'Apple Pie')
        self.assertEqual(patterns[0].severity, Severity.CRITICAL)


class TestCorrelations(unittest.TestCase):

    def setUp(self):
        self.settings = dict(config.pattern_settings)
        self.start = date(2024, 3, 6)
        self.base = [5, 8, 6, 10, 7, 9, 4, 11, 6, 8]

    def test_synergy(self):
        records = records_for('COFFEE', self.start, self.base) + records_for('CROISSANT', self.start, self.base)
        patterns = of_type(mine_patterns(build_product_series(records), settings=self.settings),
                           PatternType.CORRELATION_SYNERGY)

        self.assertEqual(len(patterns), 2)
        coffee = [p for p in patterns if p.target_product_id == 'COFFEE'][0]
        self.assertEqual(coffee.related_product_id, 'CROISSANT')
        self.assertEqual(coffee.severity, Severity.MEDIUM)
        self.assertAlmostEqual(coffee.metric_value, 1.0, places=9)

    def test_cannibalization(self):
        mirrored = [20 - q for q in self.base]
        records = records_for('WHITE', self.start, self.base) + records_for('BROWN', self.start, mirrored)
        patterns = of_type(mine_patterns(build_product_series(records), settings=self.settings),
                           PatternType.CORRELATION_CANNIBALIZATION)

        self.assertEqual(len(patterns), 2)
        self.assertEqual(patterns[0].severity, Severity.HIGH)
        self.assertAlmostEqual(patterns[0].metric_value, -1.0, places=9)

    def test_strongest_partner_only(self):
        noisy = [q + d for q, d in zip(self.base, [3, -2, 2, 0, -3, 1, 3, -2, 0, 2])]
        records = (
            records_for('COFFEE', self.start, self.base)
            + records_for('CROISSANT', self.start, self.base)
            + records_for('MUFFIN', self.start, noisy)
        )
        patterns = [
            p for p in mine_patterns(build_product_series(records), settings=self.settings)
            if p.target_product_id == 'COFFEE' and p.type in (
                PatternType.CORRELATION_SYNERGY, PatternType.CORRELATION_CANNIBALIZATION
            )
        ]

        self.assertEqual(len(patterns), 1)
        self.assertEqual(patterns[0].related_product_id, 'CROISSANT')

    def test_short_overlap_is_ignored(self):
        records = records_for('COFFEE', self.start, self.base[:6]) + records_for('CROISSANT', self.start, self.base[:6])
        patterns = mine_patterns(build_product_series(records), settings=self.settings)

        self.assertEqual(of_type(patterns, PatternType.CORRELATION_SYNERGY), [])


class TestContextualCorrelations(unittest.TestCase):

    def setUp(self):
        self.settings = dict(config.pattern_settings)

    def test_lift_margin(self):
        self.assertTrue(is_contextual_lift(0.81, 0.50, self.settings))
        self.assertFalse(is_contextual_lift(0.79, 0.50, self.settings))
        # r_ctx must also be strong on its own
        self.assertFalse(is_contextual_lift(0.74, 0.0, self.settings))

    def test_lift_just_above_and_below_threshold(self):
        self.assertTrue(is_contextual_lift(0.90, 0.59, self.settings))   # lift 0.31
        self.assertFalse(is_contextual_lift(0.90, 0.61, self.settings))  # lift 0.29

    def _promo_pair(self, off_promo):
        """Two series that match exactly on four promotion days.

        Both average 20 units; off_promo holds (a, b) deviations from 20 on
        the four other days.
        """
        start = date(2024, 1, 1)
        promo = [(10, 10), (10, 10), (30, 30), (30, 30)]
        days = promo + [(20 + a, 20 + b) for a, b in off_promo]
        series_map = build_product_series(
            records_for('TEA', start, [a for a, _ in days]) + records_for('SCONE', start, [b for _, b in days])
        )
        promo_dates = {start + timedelta(days=i) for i in range(4)}
        contexts = [('Promotion Day', lambda obs: obs.date in promo_dates)]
        return series_map, contexts

    def _contextual(self, series_map, contexts):
        return analyze_contextual_correlations(
            series_map['TEA'], 'Tea', list(series_map.values()), {'SCONE': 'Scone'}, self.settings, contexts
        )

    def test_lift_of_031_emits_pattern(self):
        # r_global = 328 / 472, lift 0.305 over a perfect promotion correlation
        series_map, contexts = self._promo_pair([(6, -6), (-6, 6), (0, 0), (0, 0)])
        r_global = pearson_correlation(series_map['TEA'].quantities, series_map['SCONE'].quantities)
        self.assertAlmostEqual(1.0 - r_global, 0.305, places=3)

        patterns = self._contextual(series_map, contexts)

        self.assertEqual(len(patterns), 1)
        self.assertEqual(patterns[0].type, PatternType.CONTEXTUAL_SYNERGY)
        self.assertEqual(patterns[0].dimensions['context'], 'Promotion Day')
        self.assertEqual(patterns[0].related_product_id, 'SCONE')
        self.assertAlmostEqual(patterns[0].metric_value, 30.5, places=1)

    def test_lift_of_029_emits_nothing(self):
        # r_global = 332 / 468, lift 0.291
        series_map, contexts = self._promo_pair([(5, -5), (-5, 5), (3, -3), (-3, 3)])
        r_global = pearson_correlation(series_map['TEA'].quantities, series_map['SCONE'].quantities)
        self.assertAlmostEqual(1.0 - r_global, 0.291, places=3)

        self.assertEqual(self._contextual(series_map, contexts), [])

    def test_friday_only_synergy(self):
        start = date(2024, 1, 1)  # Monday
        friday_values = [9, 11, 10, 12, 9, 11, 10, 12]
        wine, cheese = [], []
        fridays = 0
        for i in range(56):
            if (start + timedelta(days=i)).weekday() == 4:
                wine.append(friday_values[fridays])
                cheese.append(friday_values[fridays])
                fridays += 1
            else:
                wine.append(10 + i % 3)
                cheese.append(12 - i % 3)

        records = records_for('WINE', start, wine) + records_for('CHEESE', start, cheese)
        patterns = of_type(mine_patterns(build_product_series(records), settings=self.settings),
                           PatternType.CONTEXTUAL_SYNERGY)

        wine_patterns = [p for p in patterns if p.target_product_id == 'WINE']
        self.assertEqual(len(wine_patterns), 1)
        self.assertEqual(wine_patterns[0].dimensions['context'], 'Friday')
        self.assertEqual(wine_patterns[0].related_product_id, 'CHEESE')
        self.assertEqual(wine_patterns[0].severity, Severity.HIGH)
        self.assertGreater(wine_patterns[0].metric_value, 30.0)


class TestIntroductionImpact(unittest.TestCase):

    def setUp(self):
        self.settings = dict(config.pattern_settings)
        self.records = (
            records_for('CLASSIC', date(2024, 3, 6), [10] * 10 + [5] * 7)
            + records_for('DELUXE', date(2024, 3, 16), [6] * 7)
        )

    def test_disabled_by_default(self):
        self.settings['introduction_impact'] = False
        patterns = mine_patterns(build_product_series(self.records), settings=self.settings)
        self.assertEqual(of_type(patterns, PatternType.INTRODUCTION_CANNIBALIZATION), [])

    def test_drop_after_launch(self):
        self.settings['introduction_impact'] = True
        patterns = of_type(mine_patterns(build_product_series(self.records), settings=self.settings),
                           PatternType.INTRODUCTION_CANNIBALIZATION)

        self.assertEqual(len(patterns), 1)
        self.assertEqual(patterns[0].target_product_id, 'CLASSIC')
        self.assertEqual(patterns[0].related_product_id, 'DELUXE')
        self.assertEqual(patterns[0].severity, Severity.CRITICAL)
        self.assertAlmostEqual(patterns[0].metric_value, -50.0)


class TestMinePatterns(unittest.TestCase):

    def setUp(self):
        self.settings = dict(config.pattern_settings)

    def pattern(self, severity, description):
        return Pattern(
            type=PatternType.TREND_ALERT,
            severity=severity,
            target_product_id='P',
            target_product_name='P',
            dimensions={},
            metric_label='Drop',
            metric_value=0.0,
            description=description,
            actionable_advice=''
        )

    def test_sort_by_severity_is_stable(self):
        patterns = [
            self.pattern(Severity.MEDIUM, 'first medium'),
            self.pattern(Severity.CRITICAL, 'critical'),
            self.pattern(Severity.LOW, 'low'),
            self.pattern(Severity.HIGH, 'high'),
            self.pattern(Severity.MEDIUM, 'second medium'),
        ]

        ordered = [p.description for p in sort_by_severity(patterns)]
        self.assertEqual(ordered, ['critical', 'high', 'first medium', 'second medium', 'low'])

    def test_max_products_limits_by_revenue(self):
        records = []
        for key, price in (('A', 1.0), ('B', 5.0), ('C', 3.0)):
            records += records_for(key, date(2024, 3, 6), [10] * 7 + [5] * 7, price=price)

        patterns = mine_patterns(build_product_series(records), settings=self.settings, max_products=1)

        self.assertEqual({p.target_product_id for p in patterns}, {'B'})

    def test_deterministic(self):
        records = (
            records_for('A', date(2024, 3, 6), [10, 12, 9, 14, 8, 11, 10, 5, 6, 4, 5, 7, 5, 4],
                        weather=['rain', 'sunny'] * 7)
            + records_for('B', date(2024, 3, 6), [3, 5, 4, 6, 2, 5, 4, 8, 9, 7, 8, 10, 9, 8])
        )

        first = [p.to_dict() for p in mine_patterns(build_product_series(records), settings=self.settings)]
        second = [p.to_dict() for p in mine_patterns(build_product_series(records), settings=self.settings)]

        self.assertEqual(first, second)
        self.assertTrue(first)

    def test_empty_input(self):
        self.assertEqual(mine_patterns({}, settings=self.settings), [])


if __name__ == '__main__':
    unittest.main()

"""
Tests for forecast persistence and accuracy analytics.
"""
import unittest
from datetime import date
from unittest.mock import MagicMock

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from production_planner.config import config
from production_planner.core.accuracy import (
    apply_bias_correction,
    calculate_bias_correction,
    compare_forecasts,
    evaluate_accuracy,
    learn_bias_corrections,
    record_accuracy
)
from production_planner.core.entities import SeasonalityMatrix
from production_planner.core.production_forecast import forecast_production
from production_planner.core.sales_series import build_product_series
from production_planner.exceptions import DatabaseError
from production_planner.models import Base, ProductionForecastRecord
from production_planner.services.forecast_repository import ForecastRepository


def make_forecast(product_id, target_date, baseline):
    matrix = SeasonalityMatrix(baseline=baseline, confidence=1.0, data_points=30)
    return forecast_production(matrix, target_date, service_level=0.9, lot_size=1,
                               product_id=product_id, settings=dict(config.forecast_settings))


class TestForecastRepository(unittest.TestCase):

    def setUp(self):
        self.engine = create_engine('sqlite://')
        Base.metadata.create_all(self.engine)
        self.session = sessionmaker(bind=self.engine)()
        self.repository = ForecastRepository(self.session)

    def tearDown(self):
        self.session.close()
        self.engine.dispose()

    def test_save_and_load(self):
        self.repository.save_forecast(make_forecast('A', date(2024, 3, 12), 10.0))

        records = self.repository.get_forecasts(product_id='A')

        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].optimal_quantity, 14)
        self.assertEqual(records[0].market_id, '')
        self.assertEqual(records[0].confidence_level, 'high')
        self.assertEqual(records[0].to_dict()['forecast_for_date'], '2024-03-12')

    def test_save_is_an_upsert(self):
        self.repository.save_forecast(make_forecast('A', date(2024, 3, 12), 10.0))
        self.repository.save_forecast(make_forecast('A', date(2024, 3, 12), 20.0))

        records = self.session.query(ProductionForecastRecord).all()

        self.assertEqual(len(records), 1)
        self.assertAlmostEqual(records[0].lambda_value, 20.0)

    def test_markets_are_stored_separately(self):
        forecast = make_forecast('A', date(2024, 3, 12), 10.0)
        self.repository.save_forecast(forecast, market_id='north')
        self.repository.save_forecast(forecast, market_id='south')
        self.repository.save_forecast(forecast)

        self.assertEqual(len(self.repository.get_forecasts()), 3)
        self.assertEqual(len(self.repository.get_forecasts(market_id='north')), 1)

    def test_date_range(self):
        saved = self.repository.save_forecasts([
            make_forecast('A', date(2024, 3, day), 10.0) for day in (10, 11, 12, 13)
        ])

        records = self.repository.get_forecasts(start_date=date(2024, 3, 11), end_date=date(2024, 3, 12))

        self.assertEqual(saved, 4)
        self.assertEqual([r.forecast_for_date.day for r in records], [11, 12])

    def test_database_errors_are_wrapped(self):
        session = MagicMock(spec=Session)
        session.query.side_effect = OperationalError('SELECT', {}, Exception('database is locked'))
        repository = ForecastRepository(session)

        with self.assertRaises(DatabaseError):
            repository.save_forecast(make_forecast('A', date(2024, 3, 12), 10.0))
        session.rollback.assert_called_once()

        with self.assertRaises(DatabaseError):
            repository.get_forecasts()


class TestAccuracy(unittest.TestCase):

    def setUp(self):
        self.series_map = build_product_series([
            {'product_id': 'A', 'sale_date': '2024-03-11', 'quantity_sold': 10},
            {'product_id': 'A', 'sale_date': '2024-03-12', 'quantity_sold': 10},
            {'product_id': 'B', 'sale_date': '2024-03-11', 'quantity_sold': 4},
        ])
        self.products = [
            {'id': 'A', 'name': 'Baguette', 'price': 30.0, 'cost': 12.0},
            {'id': 'B', 'name': 'Brioche', 'price': 45.0, 'cost': 20.0},
        ]

    def test_record_accuracy(self):
        self.assertAlmostEqual(record_accuracy(12, 10), 80.0)
        self.assertAlmostEqual(record_accuracy(8, 10), 80.0)
        self.assertEqual(record_accuracy(40, 10), 0.0)
        self.assertEqual(record_accuracy(0, 0), 100.0)
        self.assertEqual(record_accuracy(5, 0), 0.0)

    def test_evaluate_accuracy(self):
        forecasts = [
            {'product_id': 'A', 'forecast_for_date': '2024-03-11', 'optimal_quantity': 12},
            {'product_id': 'A', 'forecast_for_date': '2024-03-12', 'optimal_quantity': 8},
            {'product_id': 'B', 'forecast_for_date': '2024-03-11', 'optimal_quantity': 4},
            {'product_id': 'B', 'forecast_for_date': '2024-03-12', 'optimal_quantity': 3},
        ]

        report = evaluate_accuracy(forecasts, self.series_map, self.products)

        over, under, exact, unsold = report.records
        self.assertEqual((over.waste, over.stockout, over.waste_cost), (2, 0, 24.0))
        self.assertEqual((under.waste, under.stockout, under.stockout_revenue), (0, 2, 36.0))
        self.assertEqual(exact.accuracy, 100.0)
        self.assertEqual((unsold.actual_qty, unsold.waste, unsold.accuracy), (0, 3, 0.0))

        self.assertEqual(report.summary.total_forecasts, 4)
        self.assertEqual(report.summary.total_waste_qty, 5)
        self.assertEqual(report.summary.total_stockout_qty, 2)
        # Days without sales are left out of the average
        self.assertAlmostEqual(report.summary.overall_accuracy, (80.0 + 80.0 + 100.0) / 3)
        # (2 - 2 + 0 + 3) / 24 sold
        self.assertAlmostEqual(report.summary.overall_bias_percent, 12.5)

        self.assertEqual([p.product_id for p in report.products], ['B', 'A'])
        baguette = report.products[1]
        self.assertEqual(baguette.product_name, 'Baguette')
        self.assertEqual(baguette.sample_size, 2)
        self.assertEqual(baguette.avg_bias, 0.0)
        self.assertAlmostEqual(baguette.madp, (2 / 12 + 2 / 8) / 2 * 100)
        self.assertEqual(baguette.track, 0.0)

        self.assertEqual(set(report.weekdays), {'Monday', 'Tuesday'})

    def test_accepts_forecast_outputs(self):
        forecast = make_forecast('A', date(2024, 3, 11), 10.0)
        report = evaluate_accuracy([forecast], self.series_map, self.products)

        self.assertEqual(report.records[0].forecast_qty, 14)
        self.assertEqual(report.records[0].actual_qty, 10)
        self.assertEqual(report.to_dict()['records'][0]['date'], '2024-03-11')

    def test_records_without_date_are_skipped(self):
        report = evaluate_accuracy([{'product_id': 'A', 'optimal_quantity': 5}], self.series_map)
        self.assertEqual(report.summary.total_forecasts, 0)
        self.assertEqual(report.summary.overall_accuracy, 0.0)


class TestBiasCorrection(unittest.TestCase):

    def setUp(self):
        self.settings = dict(config.learning_settings)
        self.series_map = build_product_series([
            {'product_id': 'A', 'sale_date': '2024-03-04', 'quantity_sold': 10},  # Monday
            {'product_id': 'A', 'sale_date': '2024-03-05', 'quantity_sold': 12},
            {'product_id': 'A', 'sale_date': '2024-03-06', 'quantity_sold': 10},
            {'product_id': 'A', 'sale_date': '2024-03-11', 'quantity_sold': 10},  # Monday
            {'product_id': 'B', 'sale_date': '2024-03-04', 'quantity_sold': 5},
            {'product_id': 'B', 'sale_date': '2024-03-05', 'quantity_sold': 5},
        ])
        forecasts = [
            {'product_id': 'A', 'forecast_for_date': day, 'optimal_quantity': 12}
            for day in ('2024-03-04', '2024-03-05', '2024-03-06', '2024-03-11', '2024-03-12')
        ] + [
            {'product_id': 'B', 'forecast_for_date': day, 'optimal_quantity': 8}
            for day in ('2024-03-04', '2024-03-05')
        ]
        self.records = compare_forecasts(forecasts, self.series_map)

    def test_exponential_bias(self):
        bias = calculate_bias_correction(self.records, 'A', settings=self.settings)

        # Errors +2, -3 (sold out, 12 uncensored to 15), +2, +2; the unsold day is skipped
        self.assertEqual(bias.bias_count, 4)
        self.assertAlmostEqual(bias.avg_bias, 0.75)
        self.assertAlmostEqual(bias.exponential_bias, 1.265)
        # The sold-out day flips direction, two agreeing errors follow
        self.assertAlmostEqual(bias.adaptive_gain, 1.2)
        self.assertEqual(bias.weekday_bias, {1: 2.0})
        self.assertAlmostEqual(bias.volatility, 4.6875 ** 0.5)
        self.assertEqual(bias.confidence_score, 40)

    def test_correction_prefers_weekday_bias(self):
        bias = calculate_bias_correction(self.records, 'A', settings=self.settings)

        self.assertAlmostEqual(bias.correction_for(date(2024, 3, 18)), (2.0 + 1.265) / 2 * 1.2)  # Monday
        self.assertAlmostEqual(bias.correction_for(date(2024, 3, 20)), 1.265 * 1.2)

        self.assertAlmostEqual(apply_bias_correction(10.0, bias, date(2024, 3, 18)), 10.0 - 1.959)
        self.assertEqual(apply_bias_correction(1.0, bias, date(2024, 3, 18)), 0.0)
        self.assertEqual(apply_bias_correction(10.0, None, date(2024, 3, 18)), 10.0)

    def test_short_history_learns_nothing(self):
        self.assertIsNone(calculate_bias_correction(self.records, 'B', settings=self.settings))
        self.assertEqual(list(learn_bias_corrections(self.records, settings=self.settings)), ['A'])

    def test_market_filter(self):
        records = compare_forecasts([
            {'product_id': 'A', 'forecast_for_date': day, 'optimal_quantity': 12, 'market_id': 'north'}
            for day in ('2024-03-04', '2024-03-06', '2024-03-11')
        ], self.series_map)

        self.assertIsNotNone(calculate_bias_correction(records, 'A', 'north', self.settings))
        self.assertIsNone(calculate_bias_correction(records, 'A', 'south', self.settings))


if __name__ == '__main__':
    unittest.main()

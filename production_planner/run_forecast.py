#!/usr/bin/env python
# run_forecast.py - Script to forecast tomorrow's production from a sales history file

import sys
import json
import argparse
from pathlib import Path

from tabulate import tabulate

from production_planner.db import db, session_scope
from production_planner.exceptions import PlannerError
from production_planner.logging_setup import get_logger
from production_planner.services.forecast_repository import ForecastRepository
from production_planner.services.forecast_service import ForecastService
from production_planner.services.insight_service import InsightService
from production_planner.utils.date_utils import convert_to_date, weekday_name

logger = get_logger('run_forecast')

def load_json(path):
    """Load a JSON list from a file."""
    with open(Path(path), 'r', encoding='utf-8') as f:
        data = json.load(f)

    if not isinstance(data, list):
        raise PlannerError(f"{path} must contain a JSON list", code='INVALID_INPUT')

    return data

def parse_service_level(value):
    if value == 'critical_ratio':
        return value
    return float(value)

def print_forecasts(forecasts, names):
    table_data = []
    for f in forecasts:
        table_data.append([
            names.get(f.product_id, f.product_id),
            f"{f.lambda_:.1f}",
            f.optimal_quantity,
            f"{f.prediction_interval.lower}-{f.prediction_interval.upper}",
            f"{f.stockout_probability:.1%}",
            f"{f.waste_probability:.1%}",
            f.confidence_level.value,
            f"{f.economics.expected_profit:.2f}"
        ])

    print(tabulate(
        table_data,
        headers=['Product', 'Lambda', 'Produce', '80% Range', 'Stockout', 'Waste', 'Confidence', 'Exp. Profit']
    ))

def print_patterns(patterns):
    table_data = [
        [p.severity.value, p.type.value, p.target_product_name, f"{p.metric_label} {p.metric_value:.2f}", p.description]
        for p in patterns
    ]

    print(tabulate(table_data, headers=['Severity', 'Type', 'Product', 'Metric', 'Insight']))

def main(argv=None):
    """Run the production forecast."""
    parser = argparse.ArgumentParser(description='Forecast daily production quantities from sales history')
    parser.add_argument('--history', required=True, help='JSON file with sale records')
    parser.add_argument('--products', help='JSON file with product metadata')
    parser.add_argument('--date', required=True, help='Target date (YYYY-MM-DD)')
    parser.add_argument('--as-of', help='Baseline anchor date, defaults to the target date')
    parser.add_argument('--weather', help='Predicted weather tag for the target date')
    parser.add_argument('--service-level', type=parse_service_level,
                        help="Service level between 0 and 1, or 'critical_ratio'")
    parser.add_argument('--lot-size', type=int, help='Production lot size')
    parser.add_argument('--patterns', action='store_true', help='Also mine sales patterns')
    parser.add_argument('--max-products', type=int, help='Mine only the top products by revenue')
    parser.add_argument('--save', action='store_true', help='Store the forecasts in the database')
    parser.add_argument('--market', help='Only use sales of this market and store the forecasts under it')
    parser.add_argument('--learn-from', help='JSON file with past forecasts to learn bias corrections from')
    parser.add_argument('--json', action='store_true', help='Output in JSON format')

    args = parser.parse_args(argv)

    target_date = convert_to_date(args.date)
    if target_date is None:
        parser.error(f"Invalid target date: {args.date}")

    as_of = convert_to_date(args.as_of) if args.as_of else None

    try:
        records = load_json(args.history)
        products = load_json(args.products) if args.products else []

        forecast_service = ForecastService(products)
        series_map = forecast_service.build_series(records, args.market)

        if args.learn_from:
            learned = forecast_service.learn_from(load_json(args.learn_from), series_map, args.market)
            logger.info(f"Applying bias corrections to {len(learned)} products")

        results = forecast_service.forecast_all(
            series_map,
            target_date,
            as_of=as_of,
            weather=args.weather,
            service_level=args.service_level,
            lot_size=args.lot_size
        )

        patterns = []
        if args.patterns:
            patterns = InsightService(products).mine(series_map, args.max_products)

        if args.save:
            db.initialize()
            db.create_all_tables()
            with session_scope() as session:
                saved = ForecastRepository(session).save_forecasts(results['forecasts'], args.market)
            logger.info(f"Saved {saved} forecasts")
    except (PlannerError, OSError, ValueError) as e:
        logger.error(f"Forecast run failed: {str(e)}")
        return 1

    if args.json:
        print(json.dumps({
            'forecasts': [f.to_dict() for f in results['forecasts']],
            'patterns': [p.to_dict() for p in patterns],
            'errors': results['error_items']
        }, indent=2, default=str))
        return 0 if results['errors'] == 0 else 1

    names = {key: name for key, (name, _, _) in forecast_service.catalogue.items()}

    print(f"\nProduction plan for {weekday_name(target_date)} {target_date.isoformat()}"
          f"{' (' + args.weather + ')' if args.weather else ''}:\n")
    print_forecasts(results['forecasts'], names)

    if results['error_items']:
        print(f"\n{results['errors']} products could not be forecast:")
        print(tabulate(
            [[item['product_id'], item['error']] for item in results['error_items']],
            headers=['Product', 'Error']
        ))

    if args.patterns:
        print(f"\nSales patterns ({len(patterns)}):\n")
        print_patterns(patterns)

    return 0 if results['errors'] == 0 else 1

if __name__ == '__main__':
    sys.exit(main())

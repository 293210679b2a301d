#!/usr/bin/env python3
"""
Retirement Cost Collector

Reports what a set of Azure resources flagged for retirement cost during one
billing month, using the Cost Management query API per resource.
App Service Environments are expanded into the App Service plans they host.

Usage:
    # Last full month, comma-delimited input
    python3 retirement_cost.py --input retirements.csv

    # Specific month, semicolon-delimited input, with export
    python3 retirement_cost.py --input retirements.csv --delimiter ';' --period 202401 \\
        --export retirement_costs.csv

    # Only resources retiring before a date
    python3 retirement_cost.py --input retirements.csv --end-date 2026-12-31
"""
import argparse
import logging
import os
import sys
from datetime import datetime, timezone
from typing import List, Optional

from retcost.aggregator import CostAggregator
from retcost.auth import AzureCredentialProvider, StaticTokenProvider
from retcost.config import generate_sample_config, load_config, query_config_from
from retcost.constants import (
    DEFAULT_DELIMITER,
    ENVIRONMENT_RESOURCE_TYPE,
    EXIT_AUTH,
    EXIT_FATAL_INPUT,
    EXIT_INTERRUPTED,
    EXIT_OK,
    EXPORT_FIELDNAMES,
)
from retcost.cost_query import CostQueryClient
from retcost.errors import AuthError, FatalInputError
from retcost.expander import AzureResourceGraph
from retcost.models import BillingPeriod, ResourceRecord
from retcost.pipeline import RunContext, run_pipeline
from retcost.report import Reporter
from retcost.resource_list import load_resources, parse_end_date
from retcost.utils import generate_run_id, get_timestamp, setup_logging, write_csv, write_json

logger = logging.getLogger(__name__)

ACCESS_TOKEN_ENV = 'RETCOST_ACCESS_TOKEN'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Retirement Cost Collector - cost of resources flagged for retirement',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Last full month
  python3 retirement_cost.py --input retirements.csv

  # January 2024, semicolon-delimited, export per-resource costs
  python3 retirement_cost.py -i retirements.csv -d ';' -p 202401 --export costs.csv

  # Give up on a throttled resource after an hour of waiting
  python3 retirement_cost.py -i retirements.csv --max-total-wait 3600

  # Print a sample config file
  python3 retirement_cost.py --generate-config > retcost-config.yaml
"""
    )

    # Defaults are None so config file / env values are not masked;
    # real defaults are applied after the merge.
    parser.add_argument('-i', '--input', help='Retirement list file (CSV)')
    parser.add_argument('-d', '--delimiter', help=f"Input/export delimiter (default: '{DEFAULT_DELIMITER}')")
    parser.add_argument('-p', '--period', help='Billing period YYYYMM (default: last full month)')
    parser.add_argument('--end-date', help='Only resources retiring on or before YYYY-MM-DD')
    parser.add_argument('--date-format', help='strptime format of the Retirement Date column (default: ISO-8601)')

    parser.add_argument('--max-attempts', type=int,
                        help='Give up on a throttled resource after this many attempts (default: unlimited)')
    parser.add_argument('--max-total-wait', type=float,
                        help='Give up on a throttled resource after waiting this many seconds (default: unlimited)')
    parser.add_argument('--no-expand', action='store_true',
                        help='Do not add App Service plans hosted in retiring environments')

    parser.add_argument('-o', '--output', help='Output directory for log file and summary (default: .)')
    parser.add_argument('--export', help='Write per-resource costs to this file')
    parser.add_argument('--summary-json', action='store_const', const=True,
                        help='Also write a JSON summary to the output directory')
    parser.add_argument('--log-file', action='store_true', help='Also write a (redacted) log file')
    parser.add_argument('--log-level', help='Logging level (default: INFO)')

    parser.add_argument('--config', help='YAML config file')
    parser.add_argument('--generate-config', action='store_true', help='Print a sample config file and exit')
    return parser


def _apply_defaults(args) -> None:
    if not args.delimiter:
        args.delimiter = DEFAULT_DELIMITER
    if not args.output:
        args.output = '.'
    if not args.log_level:
        args.log_level = 'INFO'


def _build_credentials(records: List[ResourceRecord], expand: bool):
    """Token provider plus (if needed) a resource graph sharing its credential."""
    static_token = os.environ.get(ACCESS_TOKEN_ENV)
    needs_graph = expand and any(r.resource_type == ENVIRONMENT_RESOURCE_TYPE for r in records)

    if static_token:
        logger.info(f"Using access token from {ACCESS_TOKEN_ENV}")
        credentials = StaticTokenProvider(static_token)
        credential = None
    else:
        credentials = AzureCredentialProvider()
        credential = credentials.credential

    graph = None
    if needs_graph:
        if credential is None:
            from azure.identity import DefaultAzureCredential
            credential = DefaultAzureCredential()
        subscriptions = sorted({
            r.subscription_id for r in records if r.resource_type == ENVIRONMENT_RESOURCE_TYPE
        })
        graph = AzureResourceGraph(credential, subscriptions)

    return credentials, graph


def run(args, config) -> int:
    """Execute one collection run. Fatal input problems propagate as FatalInputError."""
    # Validate arguments before touching any file or API
    period = BillingPeriod(args.period) if args.period else BillingPeriod.last_full_month()
    end_date = parse_end_date(args.end_date)

    records = load_resources(
        args.input,
        delimiter=args.delimiter,
        now=datetime.now(timezone.utc),
        end_date=end_date,
        date_format=args.date_format,
    )
    logger.info(f"{len(records)} resource(s) retiring in window; billing period {period}")

    credentials, graph = _build_credentials(records, expand=not args.no_expand)

    context = RunContext(
        period=period,
        credentials=credentials,
        client=CostQueryClient(config=query_config_from(config)),
        graph=graph,
        reporter=Reporter(),
        aggregator=CostAggregator(export=bool(args.export)),
    )
    aggregator = run_pipeline(context, records)

    if args.export:
        write_csv(aggregator.export_rows, args.export, fieldnames=EXPORT_FIELDNAMES, delimiter=args.delimiter)

    if args.summary_json:
        os.makedirs(args.output, exist_ok=True)
        summary = {
            'run_id': generate_run_id(),
            'timestamp': get_timestamp(),
            'input': args.input,
            **aggregator.to_summary(period),
        }
        write_json(summary, os.path.join(args.output, f"retirement_cost_sum_{period}.json"))

    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.generate_config:
        print(generate_sample_config())
        return EXIT_OK

    try:
        config = load_config(args)
    except (FileNotFoundError, FatalInputError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FATAL_INPUT
    _apply_defaults(args)

    setup_logging(args.log_level, args.output if args.log_file else None)

    if not args.input:
        parser.error("--input is required (or set 'input' in the config file)")

    try:
        return run(args, config)
    except FatalInputError as e:
        logger.error(str(e))
        print(f"\nError: {e}", file=sys.stderr)
        return EXIT_FATAL_INPUT
    except AuthError as e:
        logger.error(str(e))
        print(f"\nAuthentication failed: {e}", file=sys.stderr)
        print("Run 'az login' or set RETCOST_ACCESS_TOKEN and retry.", file=sys.stderr)
        return EXIT_AUTH
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_INTERRUPTED


if __name__ == '__main__':
    sys.exit(main())

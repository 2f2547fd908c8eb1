"""
Command-line argument parser configuration.

This module sets up the argument parser for the salesline-recon CLI tool,
defining all commands and their options.
"""

import argparse

from ..queries.lines import LINE_SOURCES


def _filter_pair(value: str) -> tuple[str, str]:
    name, sep, filter_value = value.partition("=")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"Expected NAME=VALUE, got {value!r}")
    return name.strip(), filter_value.strip()


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser for the CLI.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="salesline-recon",
        description="Sales-line reconciliation between the ERP OData service and the warehouse",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Reconcile one order and print the line report
  salesline-recon analyze --sales-id PAT-000123

  # Save the line report as CSV
  salesline-recon analyze --sales-id PAT-000123 --format csv --output report.csv

  # Generate correction and rollback scripts
  salesline-recon corrections --sales-id PAT-000123 --output-dir ./scripts

  # Print the channel comparison SQL for a window
  salesline-recon sql channel-comparison --from 2024-01-01 --to 2024-06-30

  # Print the mismatch summary SQL with a custom tolerance
  salesline-recon sql mismatch-orders --from 2024-01-01 --tolerance 0.01

  # Download processed lines for an invoice date range
  salesline-recon sql lines --source procesada --filter invoiceDateFrom=2024-01-01 \\
      --filter invoiceDateTo=2024-01-31 --execute --output lines.csv

  # Show the rollback of an executed statement
  salesline-recon logs --rollback 42
        """
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Logging level (default: INFO)'
    )
    parser.add_argument(
        '--json-logs',
        action='store_true',
        help='Emit logs as JSON lines'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # ========== Analyze command ==========
    analyze_parser = subparsers.add_parser('analyze', help='Reconcile the lines of one order')
    analyze_parser.add_argument(
        '--sales-id',
        required=True,
        help='SalesId of the order to reconcile'
    )
    analyze_parser.add_argument(
        '--format',
        choices=['console', 'json', 'csv'],
        default='console',
        help='Output format (default: console)'
    )
    analyze_parser.add_argument(
        '--output',
        help='Output file path (required for json and csv formats)'
    )
    analyze_parser.add_argument(
        '--compare-item-and-date',
        action='store_true',
        help='Also flag item id and invoice date differences'
    )

    # ========== Corrections command ==========
    corrections_parser = subparsers.add_parser(
        'corrections', help='Generate correction SQL for one order'
    )
    corrections_parser.add_argument(
        '--sales-id',
        required=True,
        help='SalesId of the order to correct'
    )
    corrections_parser.add_argument(
        '--output-dir',
        help='Directory for the correction and rollback scripts (default: current directory)'
    )
    corrections_parser.add_argument(
        '--format',
        choices=['console', 'json'],
        default='console',
        help='Plan output format (default: console)'
    )

    # ========== SQL command ==========
    sql_parser = subparsers.add_parser('sql', help='Build aggregate and line download queries')
    sql_subparsers = sql_parser.add_subparsers(dest='query', help='Query to build')

    for name, help_text in (
        ('channel-comparison', 'Per-channel BASE vs VIEW totals'),
        ('mismatch-orders', 'Orders whose BASE and VIEW amounts differ'),
    ):
        aggregate_parser = sql_subparsers.add_parser(name, help=help_text)
        aggregate_parser.add_argument(
            '--from',
            dest='date_from',
            help='Window start, YYYY-MM-DD (default: COMPARISON_WINDOW_START or 2020-01-01)'
        )
        aggregate_parser.add_argument(
            '--to',
            dest='date_to',
            help='Window end, YYYY-MM-DD (default: yesterday)'
        )
        if name == 'mismatch-orders':
            aggregate_parser.add_argument(
                '--tolerance',
                type=float,
                help='Absolute amount tolerance (default: 0.005)'
            )

    lines_parser = sql_subparsers.add_parser('lines', help='Filtered line download')
    lines_parser.add_argument(
        '--source',
        choices=sorted(LINE_SOURCES),
        default='vista',
        help='Line source (default: vista)'
    )
    lines_parser.add_argument(
        '--filter',
        dest='filters',
        action='append',
        type=_filter_pair,
        default=[],
        metavar='NAME=VALUE',
        help='Filter, repeatable (e.g. salesId=PAT-1, canal=ECOM,RETAIL)'
    )
    lines_parser.add_argument(
        '--sales-id-non-empty',
        action='store_true',
        help='Only rows with a non-blank SALESID'
    )
    lines_parser.add_argument(
        '--limit',
        type=int,
        help='Row limit (default and maximum: the source ceiling)'
    )
    lines_parser.add_argument(
        '--all-columns',
        action='store_true',
        help='Select every column instead of the default subset'
    )
    lines_parser.add_argument(
        '--execute',
        action='store_true',
        help='Run the query and export the rows instead of printing the SQL'
    )
    lines_parser.add_argument(
        '--output',
        help='CSV output path for --execute (default: lines_<source>.csv)'
    )

    # ========== Logs command ==========
    logs_parser = subparsers.add_parser('logs', help='Browse the query audit log')
    logs_parser.add_argument('--sales-id', help='SalesId contains')
    logs_parser.add_argument('--action-type', help='Exact action type')
    logs_parser.add_argument('--kind', help='Exact statement kind (insert, update)')
    logs_parser.add_argument(
        '--limit',
        type=int,
        default=50,
        help='Page size, 1-200 (default: 50)'
    )
    logs_parser.add_argument(
        '--offset',
        type=int,
        default=0,
        help='Rows to skip (default: 0)'
    )
    logs_parser.add_argument(
        '--rollback',
        metavar='LOG_ID',
        help='Print the rollback SQL of one entry instead of listing'
    )

    return parser

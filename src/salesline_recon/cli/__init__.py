"""
Command-line interface for sales-line reconciliation.

Available commands:
- analyze: Reconcile the lines of one order
- corrections: Generate correction and rollback SQL for one order
- sql: Build aggregate comparison and line download queries
- logs: Browse the query audit log
"""

import sys

from utils.logging import shutdown_logging
from utils.tracing import shutdown_tracing

from .commands import cmd_analyze, cmd_corrections, cmd_logs, cmd_sql
from .credentials import get_odata_client, get_warehouse_executor, setup_cli_logging
from .parser import create_parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the salesline-recon CLI"""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_cli_logging(args.log_level, args.json_logs)

    try:
        if args.command == 'analyze':
            cmd_analyze(args)
        elif args.command == 'corrections':
            cmd_corrections(args)
        elif args.command == 'sql':
            if not args.query:
                parser.error("sql requires a query: channel-comparison, mismatch-orders or lines")
            cmd_sql(args)
        elif args.command == 'logs':
            cmd_logs(args)
        else:
            parser.print_help()
            sys.exit(1)
    finally:
        shutdown_tracing()
        shutdown_logging()


__all__ = [
    'main',
    'setup_cli_logging',
    'get_odata_client',
    'get_warehouse_executor',
    'cmd_analyze',
    'cmd_corrections',
    'cmd_logs',
    'cmd_sql',
    'create_parser',
]


if __name__ == '__main__':
    main()

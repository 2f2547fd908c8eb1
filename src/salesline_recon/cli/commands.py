"""
CLI command implementations.

This module contains the implementation of the CLI commands:
- analyze: Line reconciliation of one order
- corrections: Correction and rollback scripts for one order
- sql: Aggregate comparison and line download queries
- logs: Query audit log browsing and rollback lookup
"""

import argparse
import asyncio
import dataclasses
import json
import re
import sys
from pathlib import Path

from utils.logging import get_logger
from utils.metrics import ReconciliationMetrics

from ..audit import QueryLogRepository
from ..config import ReconciliationSettings
from ..line_level import (
    CorrectionScriptGenerator,
    LineReconciler,
    ReconciliationReport,
    render_correction_script,
)
from ..queries import (
    DateWindow,
    build_channel_comparison_query,
    build_line_download_query,
    build_mismatch_orders_query,
)
from ..report import (
    export_report_csv,
    export_report_json,
    export_rows_csv,
    format_correction_plan_console,
    format_report_console,
)
from .credentials import get_odata_client, get_warehouse_executor

logger = get_logger(__name__)


def _settings(args: argparse.Namespace) -> ReconciliationSettings:
    settings = ReconciliationSettings.from_env()
    if getattr(args, "compare_item_and_date", False):
        settings = dataclasses.replace(settings, compare_item_and_date=True)
    return settings


def _safe_filename(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]", "_", value.strip())


def _reconcile(sales_id: str, settings: ReconciliationSettings) -> ReconciliationReport:
    reconciler = LineReconciler(
        warehouse=get_warehouse_executor(),
        erp=get_odata_client(),
        settings=settings,
        metrics=ReconciliationMetrics(),
    )
    return asyncio.run(reconciler.reconcile(sales_id))


def cmd_analyze(args: argparse.Namespace) -> None:
    """
    Reconcile the lines of one order

    Exits 1 when any line is not a MATCH.

    Args:
        args: Parsed command-line arguments
    """
    logger.info(f"Starting line reconciliation for {args.sales_id}")

    try:
        report = _reconcile(args.sales_id, _settings(args))
    except Exception as e:
        logger.error(f"Reconciliation failed: {e}")
        sys.exit(1)

    report_dict = report.to_dict()

    if args.format == "console":
        print(format_report_console(report_dict))
    elif not args.output:
        logger.error(f"Output file required for {args.format.upper()} format")
        sys.exit(1)
    else:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        if args.format == "json":
            export_report_json(report_dict, str(output_path))
        else:
            export_report_csv(report_dict, str(output_path))
        logger.info(f"Report saved to {output_path}")

    if report.is_consistent:
        logger.info("All lines match")
        sys.exit(0)
    logger.warning(f"{report.summary.discrepancy_count} line(s) with discrepancies")
    sys.exit(1)


def cmd_corrections(args: argparse.Namespace) -> None:
    """
    Generate correction and rollback scripts for one order

    Args:
        args: Parsed command-line arguments
    """
    settings = _settings(args)

    try:
        report = _reconcile(args.sales_id, settings)
    except Exception as e:
        logger.error(f"Reconciliation failed: {e}")
        sys.exit(1)

    generator = CorrectionScriptGenerator(settings, metrics=ReconciliationMetrics())
    plan = generator.build_correction_plan(report)
    plan_dict = plan.to_dict()

    if args.format == "json":
        print(json.dumps(plan_dict, indent=2, default=str))
    else:
        print(format_correction_plan_console(plan_dict))

    if not plan.statements:
        logger.info(f"No corrections needed for {report.sales_id}")
        return

    output_dir = Path(args.output_dir or ".")
    output_dir.mkdir(parents=True, exist_ok=True)
    name = _safe_filename(report.sales_id)

    script_path = output_dir / f"corrections_{name}.sql"
    rollback_path = output_dir / f"rollback_{name}.sql"
    with open(script_path, 'w') as f:
        f.write(render_correction_script(
            plan.statements, title=report.sales_id, generated_at=plan.generated_at
        ))
    with open(rollback_path, 'w') as f:
        f.write(render_correction_script(
            plan.statements, title=report.sales_id, rollback=True, generated_at=plan.generated_at
        ))

    logger.info(f"Generated correction script: {script_path}")
    logger.info(f"Generated rollback script: {rollback_path}")


def cmd_sql(args: argparse.Namespace) -> None:
    """
    Build (and for line downloads, optionally run) a reporting query

    Args:
        args: Parsed command-line arguments
    """
    settings = _settings(args)

    try:
        if args.query == "channel-comparison":
            window = DateWindow.from_settings(settings, args.date_from, args.date_to)
            print(build_channel_comparison_query(window, settings))
            return

        if args.query == "mismatch-orders":
            window = DateWindow.from_settings(settings, args.date_from, args.date_to)
            print(build_mismatch_orders_query(window, args.tolerance, settings))
            return

        filters = dict(args.filters)
        if args.sales_id_non_empty:
            filters["salesIdNonEmpty"] = True
        query = build_line_download_query(
            args.source,
            filters=filters,
            limit=args.limit,
            include_all_columns=args.all_columns,
            settings=settings,
        )
    except ValueError as e:
        logger.error(f"Invalid query parameters: {e}")
        sys.exit(2)

    if not args.execute:
        print(query.sql)
        print(f"-- binds: {json.dumps(query.binds, default=str)}")
        return

    try:
        rows = asyncio.run(get_warehouse_executor().execute(query.sql, query.binds))
    except Exception as e:
        logger.error(f"Line download failed: {e}")
        sys.exit(1)

    output_path = Path(args.output or f"lines_{query.metadata['source']}.csv")
    output_path.parent.mkdir(parents=True, exist_ok=True)
    count = export_rows_csv(rows, str(output_path))
    logger.info(f"Exported {count} rows to {output_path}")


def cmd_logs(args: argparse.Namespace) -> None:
    """
    List audit log entries or print one entry's rollback

    Args:
        args: Parsed command-line arguments
    """
    try:
        repository = QueryLogRepository(get_warehouse_executor(), _settings(args))

        if args.rollback:
            print(asyncio.run(repository.rollback_sql_for(args.rollback)))
            return

        async def load():
            page = await repository.fetch(
                sales_id=args.sales_id,
                action_type=args.action_type,
                kind=args.kind,
                limit=args.limit,
                offset=args.offset,
            )
            total = await repository.count(
                sales_id=args.sales_id, action_type=args.action_type, kind=args.kind
            )
            return page, total

        page, total = asyncio.run(load())
    except (LookupError, ValueError) as e:
        logger.error(str(e))
        sys.exit(1)

    print(f"Showing {len(page['logs'])} of {total} entries (offset {page['offset']})")
    for entry in page["logs"]:
        rollback = "rollback available" if entry.has_rollback else "no rollback"
        print(
            f"#{entry.log_id} {entry.executed_at} {entry.action_type}/{entry.kind or '-'} "
            f"{entry.sales_id or '-'} line {entry.line_number} ({rollback})"
        )

"""
Report formatting and export utilities.

This module exports line reconciliation reports, correction plans and
query results as JSON, CSV and console text. All functions take the plain
dictionaries produced by ``to_dict``.
"""

import csv
import json
from collections.abc import Iterable, Mapping
from typing import Any

# Semicolon keeps spreadsheet locales that use a decimal comma happy
ROW_EXPORT_DELIMITER = ";"


def _amount(value: Any) -> str:
    if value is None:
        return "-"
    return f"{value:,.2f}"


def export_report_json(report: dict[str, Any], output_path: str) -> None:
    """
    Export a report (or correction plan) to a JSON file

    Args:
        report: Report dictionary
        output_path: Path to output file
    """
    with open(output_path, 'w') as f:
        json.dump(report, f, indent=2, default=str)


def export_report_csv(report: dict[str, Any], output_path: str) -> None:
    """
    Export report lines to a CSV file, one row per line

    Args:
        report: Report dictionary
        output_path: Path to output file
    """
    with open(output_path, 'w', newline='') as f:
        writer = csv.writer(f)

        writer.writerow([
            "Sales Id",
            "Line Number",
            "Status",
            "OData Amount",
            "Snowflake Amount",
            "Difference",
            "SalesLinePk",
            "Issues",
        ])

        for line in report.get("lines", []):
            snowflake = line.get("snowflake") or {}
            writer.writerow([
                report.get("sales_id", ""),
                line.get("line_number", ""),
                line.get("status", ""),
                "" if line.get("odata_amount") is None else line["odata_amount"],
                "" if line.get("snowflake_amount") is None else line["snowflake_amount"],
                "" if line.get("diff_amount") is None else round(line["diff_amount"], 6),
                snowflake.get("line_pk") or "",
                " | ".join(line.get("issues", [])),
            ])


def export_rows_csv(
    rows: Iterable[Mapping[str, Any]],
    output_path: str,
    delimiter: str = ROW_EXPORT_DELIMITER,
) -> int:
    """
    Export query rows to CSV with a UTF-8 BOM

    Columns come from the first row. None is written as an empty field.

    Returns:
        Number of data rows written
    """
    rows = list(rows)
    with open(output_path, 'w', newline='', encoding='utf-8-sig') as f:
        if not rows:
            return 0
        columns = list(rows[0].keys())
        writer = csv.writer(f, delimiter=delimiter)
        writer.writerow(columns)
        for row in rows:
            writer.writerow(["" if row.get(column) is None else row.get(column) for column in columns])
    return len(rows)


def format_report_console(report: dict[str, Any]) -> str:
    """
    Format a line reconciliation report for console output

    Args:
        report: Report dictionary

    Returns:
        Formatted string for console display
    """
    summary = report["summary"]
    sources = report["sources"]
    lines = []

    lines.append("=" * 80)
    lines.append(f"LINE RECONCILIATION REPORT: {report['sales_id']}")
    lines.append("=" * 80)
    lines.append(f"Generated: {report['generated_at']}")
    lines.append(f"OData Lines: {summary['odata_line_count']} ({sources['odata_raw_count']} raw)")
    lines.append(
        f"Snowflake Lines: {summary['snowflake_line_count']} "
        f"({sources['snowflake_raw_count']} raw)"
    )
    unaligned = sources.get("odata_unaligned_count", 0) + sources.get("snowflake_unaligned_count", 0)
    if unaligned:
        lines.append(f"Lines Without Line Number: {unaligned}")
    lines.append("")

    lines.append("SUMMARY")
    lines.append("-" * 80)
    for key, label in (
        ("missing_in_odata", "Missing in OData"),
        ("missing_in_snowflake", "Missing in Snowflake"),
        ("amount_mismatches", "Amount mismatches"),
        ("item_mismatches", "Item mismatches"),
        ("invoice_mismatches", "Invoice mismatches"),
        ("date_mismatches", "Date mismatches"),
        ("canal_mismatches", "Canal mismatches"),
    ):
        numbers = summary.get(key, [])
        detail = f" (lines {', '.join(str(n) for n in numbers)})" if numbers else ""
        lines.append(f"{label}: {len(numbers)}{detail}")
    lines.append("")

    if report["lines"]:
        lines.append("LINES")
        lines.append("-" * 80)
        lines.append(f"{'Line':>6}  {'Status':<22}{'OData':>14}{'Snowflake':>14}{'Diff':>12}")
        for line in report["lines"]:
            lines.append(
                f"{line['line_number']:>6}  {line['status']:<22}"
                f"{_amount(line['odata_amount']):>14}"
                f"{_amount(line['snowflake_amount']):>14}"
                f"{_amount(line['diff_amount']):>12}"
            )
            for issue in line["issues"]:
                lines.append(f"{'':>8}- {issue}")
        lines.append("")

    lines.append("=" * 80)

    return "\n".join(lines)


def format_correction_plan_console(plan: dict[str, Any]) -> str:
    """
    Format a correction plan for console output

    Args:
        plan: Correction plan dictionary

    Returns:
        Formatted string for console display
    """
    summary = plan["summary"]
    lines = []

    lines.append("=" * 80)
    lines.append(f"CORRECTION PLAN: {plan['sales_id']}")
    lines.append("=" * 80)
    lines.append(f"Inserts: {summary['insert_count']}")
    lines.append(f"Updates: {summary['update_count']}")
    lines.append(f"Actionable: {summary['actionable_count']}")
    lines.append(f"Not actionable: {summary['non_actionable_count']}")
    lines.append("")

    for section, statements in (("INSERTS", plan["inserts"]), ("UPDATES", plan["updates"])):
        if not statements:
            continue
        lines.append(section)
        lines.append("-" * 80)
        for statement in statements:
            marker = "" if statement["actionable"] else " [not actionable]"
            lines.append(f"Line {statement['line_number']}: {statement['reason']}{marker}")
            if statement["affected_columns"] and statement["kind"] == "update":
                lines.append(f"  Columns: {', '.join(statement['affected_columns'])}")
            for key, value in statement["preview"].items():
                lines.append(f"  {key}: {value}")
            lines.append("")

    lines.append("=" * 80)

    return "\n".join(lines)

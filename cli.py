import functools
import json
import logging
from pathlib import Path

import click
import pandas as pd

from config.settings import LOG_FORMAT
from core.calculator import calculate_loan
from core.exceptions import EngineError
from core.extension import quote_extension
from core.penalty import calc_penalty
from core.schedule_generator import schedule_to_frame
from data_manager.data_validator import validate_principal
from data_manager.excel_handler import export_quote_workbook, fees_to_frame, summary_rows
from data_manager.schema import CalculationRequest, LoanRecord
from data_manager.snapshot_decoder import (
    decode_loan_record, decode_penalty_tiers, decode_plan_snapshot, default_penalty_tiers,
)
from utils.date_utils import days_between, parse_date
from utils.formatters import fmt_amount, fmt_days
from utils.money import money


def _engine_errors(func):
    """Report engine errors as CLI errors instead of tracebacks"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except EngineError as exc:
            raise click.ClickException(str(exc))
    return wrapper


def _parse_date_option(ctx, param, value):
    if value is None:
        return None
    try:
        return parse_date(value)
    except ValueError:
        raise click.BadParameter(f"expected YYYY-MM-DD, got {value!r}")


def _principal_option(ctx, param, value):
    ok, message = validate_principal(value)
    if not ok:
        raise click.BadParameter(message)
    return money(value)


def _read_text(path) -> str:
    return Path(path).read_text(encoding="utf-8")


def _build_request(plan_file, principal, anchor_date, salary_day) -> CalculationRequest:
    plan = decode_plan_snapshot(_read_text(plan_file))
    loan = LoanRecord(principal=principal, disbursed_at=anchor_date)
    return CalculationRequest(loan=loan, plan=plan, salary_day=salary_day, anchor_date=anchor_date)


def _csv(df: pd.DataFrame) -> str:
    return df.to_csv(index=False, float_format="%.2f")


quote_options = [
    click.option('--plan-file', type=click.Path(exists=True, dir_okay=False), required=True,
                 help='Plan snapshot JSON file'),
    click.option('--principal', type=str, required=True, callback=_principal_option, help='Loan principal'),
    click.option('--anchor-date', type=str, required=True, callback=_parse_date_option,
                 help='Processed/disbursed date (YYYY-MM-DD)'),
    click.option('--salary-day', type=int, default=None, help='Borrower salary day of month (1-31)'),
]


def _add_options(options):
    def decorator(func):
        for option in reversed(options):
            func = option(func)
        return func
    return decorator


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
def cli(verbose):
    """Loan calculation engine: quotes, schedules, extensions and penalties."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=LOG_FORMAT)


@cli.command()
@_add_options(quote_options)
@click.option('--excel', 'excel_path', type=click.Path(dir_okay=False), help='Also write an Excel workbook')
@_engine_errors
def quote(plan_file, principal, anchor_date, salary_day, excel_path):
    """Calculates disbursal, interest, fees, APR and the schedule for a loan."""
    request = _build_request(plan_file, principal, anchor_date, salary_day)
    result = calculate_loan(request)
    click.echo(f"Plan: {request.plan.plan_type.label}")
    for row in summary_rows(result):
        click.echo(f"{row['item']}: {row['value']}")
    if result.fees.lines:
        click.echo("\n--- Fees ---")
        click.echo(_csv(fees_to_frame(result)))
    click.echo("\n--- Schedule ---")
    click.echo(_csv(schedule_to_frame(result.schedule)))
    for warning in result.warnings:
        click.echo(f"Warning [{warning.code.value}]: {warning.message}", err=True)
    if excel_path:
        path = export_quote_workbook(result, excel_path)
        click.echo(f"Workbook written to {path}")


@cli.command()
@_add_options(quote_options)
@_engine_errors
def schedule(plan_file, principal, anchor_date, salary_day):
    """Generates the repayment schedule and outputs it as CSV."""
    result = calculate_loan(_build_request(plan_file, principal, anchor_date, salary_day))
    click.echo(_csv(schedule_to_frame(result.schedule)))


@cli.command('extension-quote')
@click.option('--loan-file', type=click.Path(exists=True, dir_okay=False), required=True,
              help='Loan row JSON file')
@click.option('--plan-file', type=click.Path(exists=True, dir_okay=False),
              help='Plan snapshot JSON file (defaults to the loan row plan_snapshot)')
@click.option('--as-of', type=str, required=True, callback=_parse_date_option, help='Request date (YYYY-MM-DD)')
@click.option('--salary-day', type=int, default=None, help='Borrower salary day of month (1-31)')
@click.option('--tiers-file', type=click.Path(exists=True, dir_okay=False), help='Late fee tier table JSON file')
@_engine_errors
def extension_quote(loan_file, plan_file, as_of, salary_day, tiers_file):
    """Quotes the next extension of a loan as JSON."""
    row = json.loads(_read_text(loan_file))
    loan = decode_loan_record(row)
    if plan_file:
        plan = decode_plan_snapshot(_read_text(plan_file))
    elif row.get("plan_snapshot"):
        plan = decode_plan_snapshot(row["plan_snapshot"])
    else:
        raise click.UsageError("Loan row has no plan_snapshot; pass --plan-file")
    tiers = decode_penalty_tiers(_read_text(tiers_file)) if tiers_file else None
    result = quote_extension(loan, plan, salary_day, as_of, tiers)
    click.echo(json.dumps(result.to_dict(), indent=2))


@cli.command()
@click.option('--principal', type=str, required=True, callback=_principal_option, help='Overdue principal')
@click.option('--days-overdue', type=click.IntRange(min=0), required=True, help='Days past the due date')
@click.option('--tiers-file', type=click.Path(exists=True, dir_okay=False), help='Late fee tier table JSON file')
@_engine_errors
def penalty(principal, days_overdue, tiers_file):
    """Calculates the late fee and GST for an overdue amount."""
    tiers = decode_penalty_tiers(_read_text(tiers_file)) if tiers_file else default_penalty_tiers()
    assessment = calc_penalty(principal, days_overdue, tiers)
    for line in assessment.lines:
        click.echo(f"{line.tier_name} ({fmt_days(line.days)}): {fmt_amount(line.amount)}")
    click.echo(f"Penalty: {fmt_amount(assessment.base)}")
    click.echo(f"GST: {fmt_amount(assessment.gst)}")
    click.echo(f"Total: {fmt_amount(assessment.total)}")


@cli.command('days-between')
@click.argument('start', callback=_parse_date_option)
@click.argument('end', callback=_parse_date_option)
def days_between_command(start, end):
    """Counts calendar days from START to END, both inclusive."""
    click.echo(days_between(start, end))


if __name__ == "__main__":
    cli()

"""Transform a daily report into tab-delimited rows from the command line.

Rows are printed as soon as they are final (the row still being streamed is
held until the next one starts), then the roster reconciliation summary.

Usage:
    python -m daily_report.transform.cli --template ip --input report.txt
    cat report.txt | python -m daily_report.transform.cli --columns 日期,姓名,数量 --no-roster
    python -m daily_report.transform.cli --template public --input report.txt --output table.tsv
"""

import argparse
import logging
import sys
from pathlib import Path

from daily_report.templates.registry import TEMPLATES
from daily_report.transform.backend import OpenAIBackend
from daily_report.transform.errors import TransformError
from daily_report.transform.patterns import FIELD_DELIMITER
from daily_report.transform.projector import pad_row
from daily_report.transform.reconciler import ReconciliationStatus
from daily_report.transform.session import RunContext, RunOutcome, TransformSession

logger = logging.getLogger(__name__)


def _split_names(value: str) -> list[str]:
    """Parse a comma-separated CLI list (ASCII or full-width commas)."""
    return [name.strip() for name in value.replace("，", ",").split(",") if name.strip()]


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the CLI."""
    parser = argparse.ArgumentParser(description="Extract a free-text daily report into TSV rows")
    parser.add_argument(
        "--template",
        choices=list(TEMPLATES.keys()),
        default=None,
        help="Report template supplying columns, hint and roster (default: custom)",
    )
    parser.add_argument("--columns", type=_split_names, default=None, help="Comma-separated columns, overriding the template's")
    parser.add_argument("--roster", type=_split_names, default=None, help="Comma-separated expected participants")
    parser.add_argument("--no-roster", action="store_true", help="Skip roster reconciliation")
    parser.add_argument("--input", type=Path, default=None, help="Report text file (default: stdin)")
    parser.add_argument("--output", type=Path, default=None, help="Write the clean TSV snapshot to this file")
    return parser


def _print_row(cells: list[str], width: int) -> None:
    print(FIELD_DELIMITER.join(pad_row(cells, width)))


def _print_summary(ctx: RunContext) -> None:
    """Print the reconciliation result (or the failure) after the rows."""
    if ctx.failure is not None:
        print(f"\n[Error: {ctx.failure.category.value}] {ctx.failure.message}", file=sys.stderr)
        if ctx.failure.cooldown_seconds:
            print(f"Retry in {ctx.failure.cooldown_seconds}s.", file=sys.stderr)
        return

    reconciliation = ctx.reconciliation
    if reconciliation.status is ReconciliationStatus.COMPLETE:
        print("\n[Roster: every expected participant reported]")
    elif reconciliation.status is ReconciliationStatus.INCOMPLETE:
        print(f"\n[Roster: missing {', '.join(reconciliation.missing)}]")
    elif ctx.roster:
        print("\n[Roster: the model did not report missing participants]")


def main(argv: list[str] | None = None) -> int:
    """Run one transform and stream its rows to stdout."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s", stream=sys.stderr)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    raw_text = args.input.read_text(encoding="utf-8") if args.input else sys.stdin.read()
    roster = [] if args.no_roster else args.roster

    session = TransformSession(OpenAIBackend())
    try:
        ctx = session.start(raw_text, args.template, args.columns, roster)
    except TransformError as exc:
        print(f"[Error: {exc.category}] {exc}", file=sys.stderr)
        return 2
    width = len(ctx.columns)
    if ctx.columns:
        print(FIELD_DELIMITER.join(ctx.columns))

    # Only rows followed by another row are final; print each once
    printed = 0
    for update in session.stream(ctx):
        rows = update.rows
        while printed < len(rows) - 1:
            _print_row(rows[printed], width)
            printed += 1
    for cells in ctx.rows[printed:]:
        _print_row(cells, width)

    _print_summary(ctx)

    if args.output is not None and ctx.outcome is RunOutcome.SUCCESS:
        args.output.write_text(ctx.clean_text + "\n", encoding="utf-8")
        logger.info("Wrote %d rows to %s", len(ctx.rows), args.output)

    return 0 if ctx.outcome is RunOutcome.SUCCESS else 1


if __name__ == "__main__":
    sys.exit(main())

"""Instruction prompt sent to the generation backend for one transform run."""

from daily_report.transform.patterns import FIELD_DELIMITER, MISSING_FIELD

PROMPT_TEMPLATE = """Task: extract the daily report below into a table.

Output rules:
1. Output plain text rows only. No Markdown, no code fences, no header row, no explanations.
2. One participant per row. Separate fields with a single tab character.
3. Write every date as YYYY/MM/DD.
4. If the report does not give a value for a field, write "{missing}".

Columns (in this exact order):
{columns}

{hint}
{roster_check}
Report:
{raw_text}
"""

FREE_COLUMNS_INSTRUCTION = (
    "No fixed columns: choose concise columns that fit the report and keep the same order in every row."
)

ROSTER_CHECK_TEMPLATE = """Expected participants: {names}
Make sure every expected participant who appears in the report has a row.
After the last row, append exactly one final line of the form [[MISSING: name1, name2]] \
listing the expected participants who have no data in the report, \
or [[MISSING: none]] if all of them are present.
"""


def build_prompt(raw_text: str, columns: list[str], hint: str, roster: list[str]) -> str:
    """Build the single instruction string for a transform run.

    Order: formatting rules, column list, domain hint, then the reconciliation
    instruction (only when *roster* is non-empty), then the report itself.
    The hint is inserted verbatim; the report is trimmed of surrounding blank
    lines.  An empty *columns* list leaves the column choice to the model.
    """
    column_line = FIELD_DELIMITER.join(columns) if columns else FREE_COLUMNS_INSTRUCTION
    roster_check = ROSTER_CHECK_TEMPLATE.format(names=", ".join(roster)) if roster else ""
    return PROMPT_TEMPLATE.format(
        missing=MISSING_FIELD,
        columns=column_line,
        hint=hint,
        roster_check=roster_check,
        raw_text=raw_text.strip(),
    )

"""Project clean snapshot text into rows of cells."""

from daily_report.transform.patterns import FIELD_DELIMITER, LINE_TERMINATOR, MISSING_FIELD


def split_cells(line: str) -> list[str]:
    """Split one line on the tab delimiter, keeping empty fields."""
    return line.split(FIELD_DELIMITER)


def project(clean: str) -> list[list[str]]:
    """Split *clean* into rows, dropping blank lines.

    Ragged rows pass through untouched; row widths are not checked against the
    template columns.
    """
    rows: list[list[str]] = []
    for line in clean.split(LINE_TERMINATOR):
        line = line.rstrip("\r")
        if not line.strip():
            continue
        rows.append(split_cells(line))
    return rows


def pad_row(cells: list[str], width: int, placeholder: str = MISSING_FIELD) -> list[str]:
    """Render a row to *width* cells, substituting *placeholder* for empty or absent cells.

    Cells beyond *width* are kept so a ragged row never loses data.
    """
    padded = [cell if cell.strip() else placeholder for cell in cells]
    padded.extend([placeholder] * (width - len(padded)))
    return padded

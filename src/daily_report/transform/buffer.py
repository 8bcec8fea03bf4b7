"""Append-only raw accumulator with incrementally maintained derived views.

Every terminated line is cleaned and projected exactly once, when its line
terminator arrives.  A fragment therefore only costs re-parsing the open tail
line, no matter how long the run's output gets.  The views always equal the
pure functions applied to the whole accumulator:

    buffer.clean_text      == sanitize(buffer.raw)
    buffer.rows            == project(sanitize(buffer.raw))
    buffer.reconciliation  == reconcile(buffer.raw)
"""

from daily_report.transform.patterns import LINE_TERMINATOR
from daily_report.transform.projector import split_cells
from daily_report.transform.reconciler import MarkerScanner, Reconciliation
from daily_report.transform.sanitizer import clean_line, finalize_lines, is_blank, is_pending


class StreamBuffer:
    """Raw text of one run plus its clean snapshot, row table and reconciliation."""

    def __init__(self) -> None:
        self._fragments: list[str] = []
        self._lines: list[str] = []  # cleaned, terminated lines
        self._committed: list[tuple[str, list[str]]] = []  # (clean line, cells) for non-blank terminated lines
        self._tail = ""  # raw text after the last line terminator
        self._scanner = MarkerScanner()
        self._rows_cache: list[list[str]] | None = None
        self._frozen = False

    # ─── Accumulation ────────────────────────────────────────────────────────

    def append(self, fragment: str) -> None:
        """Append one fragment and update the derived views."""
        if self._frozen:
            raise RuntimeError("Cannot append to a finished run's accumulator")
        if not fragment:
            return

        self._fragments.append(fragment)
        self._scanner.feed(fragment)
        self._rows_cache = None

        *terminated, self._tail = (self._tail + fragment).split(LINE_TERMINATOR)
        for raw_line in terminated:
            line = clean_line(raw_line)
            self._lines.append(line)
            if not is_blank(line):
                self._committed.append((line, split_cells(line)))

    def freeze(self) -> None:
        """Make the accumulator immutable; the run that owned it has ended."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ─── Views ───────────────────────────────────────────────────────────────

    @property
    def raw(self) -> str:
        return "".join(self._fragments)

    @property
    def fragment_count(self) -> int:
        return len(self._fragments)

    @property
    def clean_text(self) -> str:
        """The exportable snapshot: tab-delimited rows, newline separated."""
        return finalize_lines(self._lines + [clean_line(self._tail)])

    @property
    def rows(self) -> list[list[str]]:
        """Current row table (a fresh copy; callers may mutate it)."""
        if self._rows_cache is None:
            self._rows_cache = self._build_rows()
        return [list(cells) for cells in self._rows_cache]

    @property
    def reconciliation(self) -> Reconciliation:
        return self._scanner.result

    def _build_rows(self) -> list[list[str]]:
        candidates = self._committed
        tail_line = clean_line(self._tail)
        if not is_blank(tail_line):
            candidates = candidates + [(tail_line, split_cells(tail_line))]

        # Trailing rows that may still become a control marker are held back
        end = len(candidates)
        while end and is_pending(candidates[end - 1][0]):
            end -= 1
        return [cells for _, cells in candidates[:end]]

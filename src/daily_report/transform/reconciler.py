"""Roster reconciliation from the [[MISSING: ...]] control marker.

When a roster is supplied the model ends its output with a single marker line
naming the expected participants who produced no data.  The marker streams in
like any other text, so a match only counts once its closing "]]" has arrived.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict

from daily_report.transform.patterns import CAPTURE_QUOTES, LINE_TERMINATOR, MARKER_RE, NAME_SEPARATOR_RE, NONE_TOKENS


class ReconciliationStatus(str, Enum):
    """Tri-state outcome of roster reconciliation."""

    UNKNOWN = "unknown"
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"


class Reconciliation(BaseModel):
    """Reconciliation status plus the ordered list of missing participants."""

    model_config = ConfigDict(frozen=True)

    status: ReconciliationStatus = ReconciliationStatus.UNKNOWN
    missing: tuple[str, ...] = ()


UNKNOWN = Reconciliation()


def parse_capture(capture: str) -> Reconciliation:
    """Turn the text between "MISSING:" and "]]" into a reconciliation result."""
    content = capture.strip().strip(CAPTURE_QUOTES).strip()
    if content.casefold() in NONE_TOKENS:
        return Reconciliation(status=ReconciliationStatus.COMPLETE)
    names = tuple(name.strip() for name in NAME_SEPARATOR_RE.split(content) if name.strip())
    if not names:
        return Reconciliation(status=ReconciliationStatus.COMPLETE)
    return Reconciliation(status=ReconciliationStatus.INCOMPLETE, missing=names)


def reconcile(raw: str) -> Reconciliation:
    """Return the reconciliation carried by the first complete marker in *raw*."""
    match = MARKER_RE.search(raw)
    if match is None:
        return UNKNOWN
    return parse_capture(match.group(1))


class MarkerScanner:
    """Incremental form of reconcile() fed one fragment at a time.

    Markers never span a line terminator, so only the open line can still
    produce a match; it is kept from its first "[[" onward.  Once a marker is
    confirmed the result is fixed for the rest of the run.
    """

    def __init__(self) -> None:
        self._carry = ""
        self._result = UNKNOWN

    @property
    def result(self) -> Reconciliation:
        return self._result

    def feed(self, fragment: str) -> Reconciliation:
        """Scan *fragment* (appended to the carried open line) and return the current result."""
        if self._result.status is not ReconciliationStatus.UNKNOWN:
            return self._result

        text = self._carry + fragment
        match = MARKER_RE.search(text)
        if match is not None:
            self._result = parse_capture(match.group(1))
            self._carry = ""
            return self._result

        open_line = text[text.rfind(LINE_TERMINATOR) + 1 :]
        start = open_line.find("[[")
        if start == -1:
            # A lone trailing "[" may pair with the next fragment's "["
            start = len(open_line) - 1 if open_line.endswith("[") else len(open_line)
        self._carry = open_line[start:]
        return self._result

"""Strip formatting artifacts from the accumulated backend output.

The model is told to emit bare TSV, but it may still open or close a code
fence anywhere, and it appends a [[MISSING: ...]] control line when a roster
is supplied.  Cleaning works line by line so the streaming buffer can cache
every terminated line and only re-clean the open one.
"""

from daily_report.transform.patterns import EDGE_WHITESPACE_RE, FENCE_RE, LINE_TERMINATOR, MARKER_RE, PENDING_LINE_RE


def clean_line(line: str) -> str:
    """Remove fences and complete control markers from one line and trim its edges.

    Repeats until nothing changes: removing one fence can bring backticks
    together into another.  The tab delimiter is never trimmed, so blank
    trailing fields survive.
    """
    previous = None
    while line != previous:
        previous = line
        line = FENCE_RE.sub("", line)
        line = MARKER_RE.sub("", line)
        line = EDGE_WHITESPACE_RE.sub("", line)
    return line


def is_blank(line: str) -> bool:
    """Return True for lines the projector discards (empty once fully stripped)."""
    return not line.strip()


def is_pending(line: str) -> bool:
    """Return True if *line* could still turn into a control marker or a fence.

    That includes a line that would shrink to such a line, or to nothing, once
    the marker or fence opened at its end completes and is removed, e.g.
    "[[MISS[[MISSING: x" or "`[[MISS".
    """
    if PENDING_LINE_RE.fullmatch(line) is not None:
        return True
    for start in range(1, len(line)):
        char = line[start]
        if char not in "[`" or (char == "`" and line[start - 1] == "`"):
            continue
        if PENDING_LINE_RE.fullmatch(line, start) is None:
            continue
        head = clean_line(line[:start])
        if is_blank(head) or is_pending(head):
            return True
    return False


def finalize_lines(lines: list[str]) -> str:
    """Join cleaned lines into the snapshot text.

    Leading blank lines are dropped.  Trailing lines are dropped while they are
    blank or pending, so a marker streaming in never shows up as a table row.
    """
    start = 0
    while start < len(lines) and is_blank(lines[start]):
        start += 1
    end = len(lines)
    while end > start and (is_blank(lines[end - 1]) or is_pending(lines[end - 1])):
        end -= 1
    return LINE_TERMINATOR.join(lines[start:end])


def sanitize(raw: str) -> str:
    """Return the clean snapshot of *raw*; idempotent and total over all strings."""
    return finalize_lines([clean_line(line) for line in raw.split(LINE_TERMINATOR)])

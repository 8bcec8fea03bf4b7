"""Compiled regex patterns and token constants for the transform pipeline.

Used by sanitizer.py, reconciler.py and classifier.py.  None of the output
patterns can match across a line terminator, which is what lets the buffer
re-parse only the open line on each fragment.
"""

import re

# ─── Output Format ───────────────────────────────────────────────────────────

FIELD_DELIMITER = "\t"
LINE_TERMINATOR = "\n"

# Placeholder the prompt asks for when a field is absent, and renderers use
# for cells beyond a ragged row's length
MISSING_FIELD = "-"

# Fence marker with an optional language tag, e.g. "```tsv" or a bare "```"
FENCE_RE = re.compile(r"```[a-z]*", re.IGNORECASE)

# Whitespace at either end of a line, except the tab field delimiter
EDGE_WHITESPACE_RE = re.compile(r"^[^\S\t]+|[^\S\t]+$")


# ─── Control Marker ──────────────────────────────────────────────────────────

MARKER_PREFIX = "[[MISSING"

# A complete marker such as "[[MISSING: 张三, 李四]]".  Accepts a full-width
# colon; the capture ends at the first "]]".
MARKER_RE = re.compile(r"\[\[MISSING[ \t]*[:：](.*?)\]\]")

# Tokens meaning "every expected participant reported"
NONE_TOKENS = ("none", "无")

# Separators between names inside the marker (ASCII and full-width comma)
NAME_SEPARATOR_RE = re.compile(r"[,，]")

# Quotes the model sometimes wraps around the capture
CAPTURE_QUOTES = "\"'“”‘’"


def _nested_prefix(literal: str, tail: str) -> str:
    """Build a pattern matching any non-empty prefix of *literal*, optionally followed by *tail*."""
    pattern = tail
    for char in reversed(literal):
        pattern = f"{re.escape(char)}(?:{pattern})?"
    return pattern


# A line that is a control marker still being streamed in: any prefix of
# "[[MISSING", or an opened marker with no "]]" yet.  Also one or two
# backticks, the first characters of a fence.
PENDING_LINE_RE = re.compile(
    _nested_prefix(MARKER_PREFIX, r"[ \t]*(?:[:：](?:(?!\]\]).)*)?") + r"|`{1,2}",
)


# ─── Backend Error Signals ───────────────────────────────────────────────────

# Quota exhaustion / 429-class conditions
RATE_LIMIT_RE = re.compile(
    r"\b429\b|quota|resource[_ ]exhausted|rate[ _-]?limit|too many requests",
    re.IGNORECASE,
)

# Invalid or expired credentials
AUTH_INVALID_RE = re.compile(
    r"\b401\b|api[ _]key not valid|invalid[ _]api[ _]key|incorrect api key|invalid authentication"
    r"|unauthori[sz]ed|expired",
    re.IGNORECASE,
)

# The invocation target (project, deployment, model) cannot be resolved or billed
ENTITY_NOT_CONFIGURED_RE = re.compile(
    r"requested entity was not found|deploymentnotfound|model_not_found|billing|\b404\b",
    re.IGNORECASE,
)

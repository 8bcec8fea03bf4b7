"""Map backend failures to user-facing categories and retry cooldowns.

Classification looks only at the failure's kind, status code, error code and
message.  It never depends on how many times the caller has retried.
"""

import logging
from enum import Enum

from pydantic import BaseModel, ConfigDict

from daily_report.config import RATE_LIMIT_COOLDOWN_SECONDS, TRANSIENT_COOLDOWN_SECONDS
from daily_report.transform.errors import BackendFailure, FailureKind
from daily_report.transform.patterns import AUTH_INVALID_RE, ENTITY_NOT_CONFIGURED_RE, RATE_LIMIT_RE

logger = logging.getLogger(__name__)


class FailureCategory(str, Enum):
    """Closed set of terminal failure categories for a run."""

    MISSING_CREDENTIAL = "missing_credential"
    ENTITY_NOT_CONFIGURED = "entity_not_configured"
    RATE_LIMITED = "rate_limited"
    AUTH_INVALID = "auth_invalid"
    TRANSIENT_UNKNOWN = "transient_unknown"


class Failure(BaseModel):
    """Classified outcome of a failed run."""

    model_config = ConfigDict(frozen=True)

    category: FailureCategory
    message: str  # human-readable, for the error banner
    detail: str  # backend's own message, unchanged
    cooldown_seconds: int = 0


_MESSAGES: dict[FailureCategory, str] = {
    FailureCategory.MISSING_CREDENTIAL: "No API credential is configured for the generation backend.",
    FailureCategory.ENTITY_NOT_CONFIGURED: "The backend project or deployment is not ready: check that it exists and has billing enabled.",
    FailureCategory.RATE_LIMITED: "The backend quota is exhausted. Wait for the cooldown before retrying.",
    FailureCategory.AUTH_INVALID: "The configured API credential is invalid or has expired.",
    FailureCategory.TRANSIENT_UNKNOWN: "The backend request failed.",
}

_COOLDOWNS: dict[FailureCategory, int] = {
    FailureCategory.RATE_LIMITED: RATE_LIMIT_COOLDOWN_SECONDS,
    FailureCategory.TRANSIENT_UNKNOWN: TRANSIENT_COOLDOWN_SECONDS,
}


def _category_from_status(failure: BackendFailure) -> FailureCategory | None:
    """Decide from the HTTP status where it is unambiguous."""
    status = failure.status_code
    if status == 429:
        return FailureCategory.RATE_LIMITED
    if status == 401:
        return FailureCategory.AUTH_INVALID
    if status == 403:
        # 403 covers both rejected keys and projects without billing
        if AUTH_INVALID_RE.search(failure.message):
            return FailureCategory.AUTH_INVALID
        return FailureCategory.ENTITY_NOT_CONFIGURED
    if status == 404:
        return FailureCategory.ENTITY_NOT_CONFIGURED
    return None


def _category_from_text(text: str) -> FailureCategory:
    """Fall back to the error code and message text."""
    if RATE_LIMIT_RE.search(text):
        return FailureCategory.RATE_LIMITED
    if AUTH_INVALID_RE.search(text):
        return FailureCategory.AUTH_INVALID
    if ENTITY_NOT_CONFIGURED_RE.search(text):
        return FailureCategory.ENTITY_NOT_CONFIGURED
    return FailureCategory.TRANSIENT_UNKNOWN


def categorize(failure: BackendFailure) -> FailureCategory:
    """Return the failure category for a backend failure."""
    if failure.kind is FailureKind.MISSING_CREDENTIAL:
        return FailureCategory.MISSING_CREDENTIAL
    if failure.kind in (FailureKind.TIMEOUT, FailureKind.CONNECTION):
        return FailureCategory.TRANSIENT_UNKNOWN
    category = _category_from_status(failure)
    if category is not None:
        return category
    return _category_from_text(" ".join(filter(None, [failure.code, failure.message])))


def classify(failure: BackendFailure) -> Failure:
    """Classify *failure* into a category, a banner message and a cooldown."""
    category = categorize(failure)
    message = _MESSAGES[category]
    if category is FailureCategory.TRANSIENT_UNKNOWN and failure.message:
        message = f"{message} {failure.message}"
    result = Failure(
        category=category,
        message=message,
        detail=failure.message,
        cooldown_seconds=_COOLDOWNS.get(category, 0),
    )
    logger.debug("Classified %r as %s (cooldown %ds)", failure, category.value, result.cooldown_seconds)
    return result

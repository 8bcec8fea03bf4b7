"""Run lifecycle for the streaming transform.

A TransformSession owns at most one current run.  Each run issues one backend
request and applies its fragments, in order, to the run's StreamBuffer:

    idle --start--> running --success--> idle
                            --failure--> cooldown --tick x N--> idle
                                     or  idle (no cooldown)

Starting a run while one is running is rejected unless the caller asks for a
restart, which abandons the old run: its stream stops applying fragments the
next time the backend delivers one.  Starting during a cooldown is always
rejected.
"""

import logging
import threading
from collections.abc import Iterator
from enum import Enum
from typing import Protocol

from daily_report.templates.registry import TemplateConfig, resolve_request
from daily_report.transform.backend import failure_from_exception
from daily_report.transform.buffer import StreamBuffer
from daily_report.transform.classifier import Failure, classify
from daily_report.transform.errors import EmptyInputError, RunRejectedError
from daily_report.transform.prompts import build_prompt
from daily_report.transform.reconciler import Reconciliation

logger = logging.getLogger(__name__)


class GenerationBackend(Protocol):
    """Anything that turns a prompt into an ordered, finite stream of text fragments."""

    def stream(self, prompt: str) -> Iterator[str]: ...


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COOLDOWN = "cooldown"


class RunOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    ABANDONED = "abandoned"


# ---------------------------------------------------------------------------
# Run context
# ---------------------------------------------------------------------------


class RunContext:
    """Everything belonging to one run: its inputs, accumulator and outcome."""

    def __init__(self, run_id: int, columns: list[str], roster: list[str], prompt: str):
        self.run_id = run_id
        self.columns = tuple(columns)
        self.roster = tuple(roster)
        self.prompt = prompt
        self.buffer = StreamBuffer()
        self.outcome: RunOutcome | None = None
        self.failure: Failure | None = None

    @property
    def finished(self) -> bool:
        return self.outcome is not None

    @property
    def raw(self) -> str:
        return self.buffer.raw

    @property
    def clean_text(self) -> str:
        return self.buffer.clean_text

    @property
    def rows(self) -> list[list[str]]:
        return self.buffer.rows

    @property
    def reconciliation(self) -> Reconciliation:
        return self.buffer.reconciliation

    def close(self, outcome: RunOutcome, failure: Failure | None = None) -> None:
        """Record the outcome and freeze the accumulator; a second close is ignored."""
        if self.finished:
            return
        self.outcome = outcome
        self.failure = failure
        self.buffer.freeze()

    def to_dict(self) -> dict:
        """JSON-friendly view of the run for the web layer."""
        return {
            "run_id": self.run_id,
            "columns": list(self.columns),
            "roster": list(self.roster),
            "rows": self.rows,
            "clean_text": self.clean_text,
            "reconciliation": self.reconciliation.model_dump(mode="json"),
            "outcome": self.outcome.value if self.outcome else None,
            "failure": self.failure.model_dump(mode="json") if self.failure else None,
        }


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class TransformSession:
    """Single-run-at-a-time transform driver with a cooldown countdown."""

    def __init__(self, backend: GenerationBackend, templates: dict[str, TemplateConfig] | None = None):
        self._backend = backend
        self._templates = templates
        self._lock = threading.Lock()
        self._state = RunState.IDLE
        self._cooldown = 0
        self._run_counter = 0
        self._current: RunContext | None = None
        self._last_failure: Failure | None = None

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def cooldown_remaining(self) -> int:
        return self._cooldown

    @property
    def current(self) -> RunContext | None:
        return self._current

    @property
    def last_failure(self) -> Failure | None:
        return self._last_failure

    def snapshot(self) -> dict:
        """Current run state, cooldown, last failure and the current run's views."""
        with self._lock:
            return {
                "state": self._state.value,
                "cooldown_remaining": self._cooldown,
                "last_failure": self._last_failure.model_dump(mode="json") if self._last_failure else None,
                "run": self._current.to_dict() if self._current else None,
            }

    # ─── Starting ────────────────────────────────────────────────────────────

    def start(
        self,
        raw_text: str,
        template_id: str | None = None,
        columns: list[str] | None = None,
        roster: list[str] | None = None,
        *,
        restart: bool = False,
    ) -> RunContext:
        """Begin a new run and return its context; fragments flow once stream() is consumed.

        Raises EmptyInputError for blank input and RunRejectedError while a
        cooldown is active, or while a run is active and *restart* is false.
        Neither touches the current run.
        """
        if not raw_text or not raw_text.strip():
            raise EmptyInputError("The report text is empty")
        effective_columns, hint, effective_roster = resolve_request(template_id, columns, roster, self._templates)
        prompt = build_prompt(raw_text, effective_columns, hint, effective_roster)

        with self._lock:
            if self._state is RunState.COOLDOWN:
                raise RunRejectedError(f"Cooling down: retry in {self._cooldown}s")
            if self._state is RunState.RUNNING and not restart:
                raise RunRejectedError("A run is already in progress")

            previous = self._current
            if previous is not None and not previous.finished:
                previous.close(RunOutcome.ABANDONED)
                logger.info("Run %d abandoned by restart", previous.run_id)

            self._run_counter += 1
            ctx = RunContext(self._run_counter, effective_columns, effective_roster, prompt)
            self._current = ctx
            self._state = RunState.RUNNING
            self._last_failure = None

        logger.info(
            "Run %d started: template=%s, %d columns, %d roster names, %d input chars",
            ctx.run_id,
            template_id,
            len(ctx.columns),
            len(ctx.roster),
            len(raw_text),
        )
        return ctx

    # ─── Streaming ───────────────────────────────────────────────────────────

    def stream(self, ctx: RunContext) -> Iterator[RunContext]:
        """Issue the backend request for *ctx* and yield it after every applied fragment.

        Backend failures end the iteration normally; the classified failure is
        on ``ctx.failure`` and ``last_failure``.  Closing this generator early
        abandons the run.  An already abandoned run yields nothing.
        """
        if ctx.outcome is RunOutcome.ABANDONED:
            return
        if ctx.finished:
            raise RuntimeError(f"Run {ctx.run_id} has already finished")

        fragments = None
        try:
            fragments = self._backend.stream(ctx.prompt)
            for fragment in fragments:
                with self._lock:
                    if ctx is not self._current or ctx.finished:
                        logger.info("Run %d is no longer current; dropping its remaining fragments", ctx.run_id)
                        return
                    ctx.buffer.append(fragment)
                yield ctx
        except GeneratorExit:
            self.abandon(ctx)
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            failure = failure_from_exception(exc)
            if failure is not exc:
                logger.exception("Unexpected error while streaming run %d", ctx.run_id)
            self._finish_failed(ctx, classify(failure))
        else:
            self._finish_succeeded(ctx)
        finally:
            # Stops the backend stream even when it is still delivering
            close = getattr(fragments, "close", None)
            if close is not None:
                close()

    def run(
        self,
        raw_text: str,
        template_id: str | None = None,
        columns: list[str] | None = None,
        roster: list[str] | None = None,
    ) -> RunContext:
        """Start a run and consume its whole stream; returns the finished context."""
        ctx = self.start(raw_text, template_id, columns, roster)
        for _ in self.stream(ctx):
            pass
        return ctx

    def _finish_succeeded(self, ctx: RunContext) -> None:
        with self._lock:
            if ctx is not self._current or ctx.finished:
                return
            ctx.close(RunOutcome.SUCCESS)
            self._state = RunState.IDLE
        logger.info(
            "Run %d completed: %d fragments, %d rows, reconciliation=%s",
            ctx.run_id,
            ctx.buffer.fragment_count,
            len(ctx.rows),
            ctx.reconciliation.status.value,
        )

    def _finish_failed(self, ctx: RunContext, failure: Failure) -> None:
        with self._lock:
            if ctx is not self._current or ctx.finished:
                logger.info("Ignoring failure of stale run %d: %s", ctx.run_id, failure.category.value)
                return
            ctx.close(RunOutcome.FAILURE, failure)
            self._last_failure = failure
            if failure.cooldown_seconds > 0:
                self._state = RunState.COOLDOWN
                self._cooldown = failure.cooldown_seconds
            else:
                self._state = RunState.IDLE
        logger.warning(
            "Run %d failed (%s, cooldown %ds): %s",
            ctx.run_id,
            failure.category.value,
            failure.cooldown_seconds,
            failure.detail,
        )

    def abandon(self, ctx: RunContext) -> None:
        """End *ctx* as abandoned if it is still the current, unfinished run."""
        with self._lock:
            if ctx is not self._current or ctx.finished:
                return
            ctx.close(RunOutcome.ABANDONED)
            self._state = RunState.IDLE
        logger.info("Run %d abandoned by its consumer", ctx.run_id)

    # ─── Cooldown ────────────────────────────────────────────────────────────

    def tick(self) -> int:
        """Advance the cooldown by one second and return the seconds remaining."""
        with self._lock:
            if self._state is not RunState.COOLDOWN:
                return 0
            self._cooldown = max(0, self._cooldown - 1)
            if self._cooldown == 0:
                self._state = RunState.IDLE
                logger.info("Cooldown elapsed; ready for a new run")
            return self._cooldown

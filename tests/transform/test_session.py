"""Tests for the run lifecycle: start, streaming, failure cooldown and restart."""

# pylint: disable=missing-class-docstring,missing-function-docstring

import pytest

from daily_report.config import RATE_LIMIT_COOLDOWN_SECONDS
from daily_report.transform.classifier import FailureCategory
from daily_report.transform.errors import BackendFailure, EmptyInputError, FailureKind, RunRejectedError
from daily_report.transform.reconciler import ReconciliationStatus
from daily_report.transform.session import RunOutcome, RunState, TransformSession

REPORT = "今天 A 做了 5 个，B 做了 3 个"
COLUMNS = ["日期", "姓名", "数量"]
FRAGMENTS = ["2024/01/01\tA", "\t5\n2024/01/01\tB\t3\n[[MISS", "ING: 无]]"]

RATE_LIMITED = BackendFailure(FailureKind.STATUS, "Resource has been exhausted", status_code=429)


class TestSuccessfulRun:

    def test_run_produces_rows_and_reconciliation(self, fake_backend):
        session = TransformSession(fake_backend(FRAGMENTS))
        ctx = session.run(REPORT, columns=COLUMNS, roster=["A", "B"])

        assert ctx.outcome is RunOutcome.SUCCESS
        assert ctx.rows == [["2024/01/01", "A", "5"], ["2024/01/01", "B", "3"]]
        assert ctx.reconciliation.status is ReconciliationStatus.COMPLETE
        assert ctx.clean_text == "2024/01/01\tA\t5\n2024/01/01\tB\t3"
        assert session.state is RunState.IDLE
        assert session.last_failure is None

    def test_one_update_per_fragment(self, fake_backend):
        session = TransformSession(fake_backend(FRAGMENTS))
        ctx = session.start(REPORT, columns=COLUMNS)
        assert session.state is RunState.RUNNING
        updates = [len(update.raw) for update in session.stream(ctx)]
        assert updates == [len("".join(FRAGMENTS[: i + 1])) for i in range(len(FRAGMENTS))]

    def test_rows_are_visible_while_streaming(self, fake_backend):
        session = TransformSession(fake_backend(FRAGMENTS))
        ctx = session.start(REPORT, columns=COLUMNS)
        seen = [update.rows for update in session.stream(ctx)]
        assert seen[0] == [["2024/01/01", "A"]]
        assert seen[1] == [["2024/01/01", "A", "5"], ["2024/01/01", "B", "3"]]

    def test_prompt_uses_template_columns(self, fake_backend):
        backend = fake_backend(["x"])
        session = TransformSession(backend)
        ctx = session.run(REPORT, template_id="ip")
        assert ctx.columns == ("日期", "IP", "数量", "运营")
        assert "日期\tIP\t数量\t运营" in backend.prompts[0]
        assert REPORT in backend.prompts[0]

    def test_empty_roster_skips_marker_instruction(self, fake_backend):
        backend = fake_backend(["x"])
        TransformSession(backend).run(REPORT, template_id="ip", roster=[])
        assert "[[MISSING" not in backend.prompts[0]

    def test_stream_of_finished_run_raises(self, fake_backend):
        session = TransformSession(fake_backend(FRAGMENTS))
        ctx = session.run(REPORT, columns=COLUMNS)
        with pytest.raises(RuntimeError):
            next(session.stream(ctx))


class TestRejectedStarts:

    def test_empty_input(self, fake_backend):
        session = TransformSession(fake_backend(FRAGMENTS))
        with pytest.raises(EmptyInputError):
            session.start("  \n\t ")
        assert session.state is RunState.IDLE
        assert session.current is None

    def test_unknown_template(self, fake_backend):
        session = TransformSession(fake_backend(FRAGMENTS))
        with pytest.raises(ValueError):
            session.start(REPORT, template_id="nope")
        assert session.state is RunState.IDLE

    def test_rejected_while_running(self, fake_backend):
        session = TransformSession(fake_backend(FRAGMENTS))
        ctx = session.start(REPORT, columns=COLUMNS)
        with pytest.raises(RunRejectedError):
            session.start(REPORT, columns=COLUMNS)
        assert session.current is ctx
        assert not ctx.finished


class TestRestart:

    def test_restart_abandons_previous_run(self, fake_backend):
        backend = fake_backend(["old\t1\n", "old\t2\n"], ["new\t1\n"])
        session = TransformSession(backend)

        old = session.start(REPORT, columns=COLUMNS)
        old_stream = session.stream(old)
        next(old_stream)
        assert old.rows == [["old", "1"]]

        new = session.start(REPORT, columns=COLUMNS, restart=True)
        assert old.outcome is RunOutcome.ABANDONED
        assert new.run_id > old.run_id

        # The old stream drops everything it still receives
        assert list(old_stream) == []
        assert old.raw == "old\t1\n"
        assert backend.closed[0]

        list(session.stream(new))
        assert new.outcome is RunOutcome.SUCCESS
        assert new.rows == [["new", "1"]]
        assert session.state is RunState.IDLE

    def test_stale_failure_does_not_touch_session(self, fake_backend):
        backend = fake_backend(["old\n", RATE_LIMITED], ["new\n"])
        session = TransformSession(backend)
        old = session.start(REPORT)
        old_stream = session.stream(old)
        next(old_stream)
        session.start(REPORT, restart=True)
        list(old_stream)
        assert session.state is RunState.RUNNING
        assert session.last_failure is None


class TestFailures:

    def test_rate_limit_enters_cooldown(self, fake_backend):
        session = TransformSession(fake_backend(["2024/01/01\tA\t5\n", RATE_LIMITED]))
        ctx = session.run(REPORT, columns=COLUMNS)

        assert ctx.outcome is RunOutcome.FAILURE
        assert ctx.failure.category is FailureCategory.RATE_LIMITED
        assert ctx.rows == [["2024/01/01", "A", "5"]]
        assert session.state is RunState.COOLDOWN
        assert session.cooldown_remaining == RATE_LIMIT_COOLDOWN_SECONDS
        assert session.last_failure == ctx.failure

        with pytest.raises(RunRejectedError):
            session.start(REPORT, columns=COLUMNS, restart=True)

    def test_cooldown_counts_down_to_idle(self, fake_backend):
        session = TransformSession(fake_backend([RATE_LIMITED], ["x"]))
        session.run(REPORT)
        remaining = [session.tick() for _ in range(RATE_LIMIT_COOLDOWN_SECONDS)]
        assert remaining == list(range(RATE_LIMIT_COOLDOWN_SECONDS - 1, -1, -1))
        assert session.state is RunState.IDLE
        assert session.run(REPORT).outcome is RunOutcome.SUCCESS

    def test_failure_before_first_fragment(self, fake_backend):
        session = TransformSession(fake_backend([RATE_LIMITED]))
        ctx = session.start(REPORT)
        assert list(session.stream(ctx)) == []
        assert ctx.outcome is RunOutcome.FAILURE
        assert ctx.rows == []

    def test_auth_failure_has_no_cooldown(self, fake_backend):
        failure = BackendFailure(FailureKind.STATUS, "Unauthorized", status_code=401)
        session = TransformSession(fake_backend([failure]))
        ctx = session.run(REPORT)
        assert ctx.failure.category is FailureCategory.AUTH_INVALID
        assert session.state is RunState.IDLE

    def test_unexpected_exception_is_transient(self, fake_backend):
        session = TransformSession(fake_backend([RuntimeError("socket closed")]))
        ctx = session.run(REPORT)
        assert ctx.failure.category is FailureCategory.TRANSIENT_UNKNOWN
        assert "socket closed" in ctx.failure.message

    def test_new_run_clears_last_failure(self, fake_backend):
        failure = BackendFailure(FailureKind.STATUS, "Unauthorized", status_code=401)
        session = TransformSession(fake_backend([failure], ["x"]))
        session.run(REPORT)
        assert session.last_failure is not None
        session.run(REPORT)
        assert session.last_failure is None


class TestAbandon:

    def test_closing_the_stream_abandons_the_run(self, fake_backend):
        backend = fake_backend(FRAGMENTS)
        session = TransformSession(backend)
        ctx = session.start(REPORT, columns=COLUMNS)
        stream = session.stream(ctx)
        next(stream)
        stream.close()
        assert ctx.outcome is RunOutcome.ABANDONED
        assert session.state is RunState.IDLE
        assert backend.closed[0]
        with pytest.raises(RuntimeError):
            ctx.buffer.append("more")


class TestStateView:

    def test_tick_while_idle(self, fake_backend):
        session = TransformSession(fake_backend(FRAGMENTS))
        assert session.tick() == 0
        assert session.state is RunState.IDLE

    def test_snapshot(self, fake_backend):
        session = TransformSession(fake_backend(FRAGMENTS))
        assert session.snapshot() == {"state": "idle", "cooldown_remaining": 0, "last_failure": None, "run": None}
        session.run(REPORT, columns=COLUMNS, roster=["A", "B"])
        snapshot = session.snapshot()
        assert snapshot["run"]["outcome"] == "success"
        assert snapshot["run"]["reconciliation"] == {"status": "complete", "missing": []}
        assert snapshot["run"]["rows"][1] == ["2024/01/01", "B", "3"]

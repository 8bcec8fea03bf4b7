"""Tests for the command-line front end, with the backend replaced by a script."""

# pylint: disable=missing-class-docstring,missing-function-docstring

import io

import pytest

from daily_report.transform import cli
from daily_report.transform.errors import BackendFailure, FailureKind

REPORT = "花花：抖音A 发了视频\n抖音B 今天 3 条"
FRAGMENTS = ["```\n2024/01/01\t抖音A\t\t花花\n2024/01/", "01\t抖音B\t3\n```\n[[MISSING: 飞哥，老郭]]"]


@pytest.fixture
def use_backend(monkeypatch, fake_backend):
    """Install a scripted backend in place of the OpenAI one; returns it."""

    def install(*scripts):
        backend = fake_backend(*scripts)
        monkeypatch.setattr(cli, "OpenAIBackend", lambda: backend)
        return backend

    return install


@pytest.fixture
def report_file(tmp_path):
    path = tmp_path / "report.txt"
    path.write_text(REPORT, encoding="utf-8")
    return path


class TestMain:

    def test_prints_padded_rows_and_roster(self, use_backend, report_file, capsys):
        use_backend(FRAGMENTS)
        assert cli.main(["--template", "ip", "--input", str(report_file)]) == 0

        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == "日期\tIP\t数量\t运营"
        assert lines[1] == "2024/01/01\t抖音A\t-\t花花"
        assert lines[2] == "2024/01/01\t抖音B\t3\t-"
        assert lines[-1] == "[Roster: missing 飞哥, 老郭]"

    def test_writes_clean_tsv(self, use_backend, report_file, tmp_path):
        use_backend(FRAGMENTS)
        output = tmp_path / "table.tsv"
        assert cli.main(["--template", "ip", "--input", str(report_file), "--output", str(output)]) == 0
        assert output.read_text(encoding="utf-8") == "2024/01/01\t抖音A\t\t花花\n2024/01/01\t抖音B\t3\n"

    def test_reads_stdin_with_custom_columns(self, use_backend, monkeypatch, capsys):
        backend = use_backend(["2024/01/01\tA\t5"])
        monkeypatch.setattr("sys.stdin", io.StringIO(REPORT))
        assert cli.main(["--columns", "日期，姓名,数量", "--no-roster"]) == 0

        assert "日期\t姓名\t数量" in backend.prompts[0]
        assert "[[MISSING" not in backend.prompts[0]
        out = capsys.readouterr().out
        assert "2024/01/01\tA\t5" in out
        assert "[Roster" not in out

    def test_roster_without_marker(self, use_backend, report_file, capsys):
        use_backend(["2024/01/01\tA\t5\t花花"])
        assert cli.main(["--template", "ip", "--input", str(report_file)]) == 0
        assert "[Roster: the model did not report missing participants]" in capsys.readouterr().out

    def test_empty_input(self, use_backend, tmp_path, capsys):
        backend = use_backend(FRAGMENTS)
        path = tmp_path / "empty.txt"
        path.write_text("  \n", encoding="utf-8")
        assert cli.main(["--input", str(path)]) == 2
        assert "[Error: empty_input]" in capsys.readouterr().err
        assert backend.prompts == []

    def test_backend_failure(self, use_backend, report_file, tmp_path, capsys):
        use_backend([BackendFailure(FailureKind.STATUS, "Resource has been exhausted", status_code=429)])
        output = tmp_path / "table.tsv"
        assert cli.main(["--template", "ip", "--input", str(report_file), "--output", str(output)]) == 1

        err = capsys.readouterr().err
        assert "[Error: rate_limited]" in err
        assert "Retry in" in err
        assert not output.exists()


class TestParser:

    def test_split_names(self):
        parser = cli.build_parser()
        args = parser.parse_args(["--roster", "A， B,,C "])
        assert args.roster == ["A", "B", "C"]

    def test_unknown_template_rejected(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--template", "nope"])

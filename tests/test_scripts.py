"""Tests for the bin/ entry scripts."""

import sys
from pathlib import Path

import pytest

# bin/ is not a package; put it on the path for imports
bin_path = Path(__file__).parent.parent / "bin"
sys.path.insert(0, str(bin_path))

import ingest_policy  # noqa: E402
import make_reports  # noqa: E402


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.setenv("FLEXLM_ANALYTICS_HOME", str(tmp_path))
    monkeypatch.setenv("FLEXLM_REPORTS_DIR", str(tmp_path / "reports"))
    monkeypatch.delenv("FLEXLM_SEATS_FILE", raising=False)
    monkeypatch.delenv("OPTIONS_FILE", raising=False)
    return tmp_path


@pytest.fixture
def log_file(tmp_path, sample_log):
    path = tmp_path / "sw_d.log"
    path.write_text(sample_log)
    return path


class TestMakeReports:
    """Tests for make_reports.main."""

    def test_writes_reports(self, env, log_file, capsys) -> None:
        assert make_reports.main([str(log_file)]) == 0
        reports = env / "reports"
        for name in ("sessions.csv", "user_stats.csv", "feature_stats.csv",
                     "rightsizing.csv", "summary.md"):
            assert (reports / name).exists()
        assert "summary.md" in capsys.readouterr().out

    def test_seat_file_argument(self, env, log_file) -> None:
        seats = env / "seats.csv"
        seats.write_text("feature,seats,annual_cost\nsolidworks,10,4500\n")
        assert make_reports.main([str(log_file), str(seats)]) == 0
        assert "over-provisioned" in (env / "reports" / "rightsizing.csv").read_text()

    def test_usage(self, env, capsys) -> None:
        assert make_reports.main([]) == 1
        assert "Usage" in capsys.readouterr().err

    def test_missing_log(self, env, capsys) -> None:
        assert make_reports.main([str(env / "nope.log")]) == 1
        assert "not found" in capsys.readouterr().err

    def test_bad_seat_file(self, env, log_file, capsys) -> None:
        seats = env / "seats.csv"
        seats.write_text("name,count\nx,1\n")
        assert make_reports.main([str(log_file), str(seats)]) == 1
        assert "Error" in capsys.readouterr().err


class TestIngestPolicy:
    """Tests for ingest_policy.main."""

    def test_normalizes_options(self, env, sample_options, capsys) -> None:
        opts = env / "sw.opt"
        opts.write_text(sample_options)
        assert ingest_policy.main([str(opts)]) == 0
        out = capsys.readouterr().out.splitlines()
        assert "RESERVE 2 solidworks GROUP eng" in out
        assert "GROUP eng alice bob carol" in out
        assert "CAP 5 cae_cwpro:SWVERSION=2024 USER erin" in out
        assert not any(line.startswith("NOLOG") for line in out)

    def test_custom_users_from_log(self, env, sample_options, log_file, capsys) -> None:
        opts = env / "sw.opt"
        opts.write_text(sample_options)
        assert ingest_policy.main([str(opts), str(log_file)]) == 0
        err = capsys.readouterr().err
        assert "Custom identifiers (not seen in log): carol erin" in err

    def test_options_file_from_env(self, env, sample_options, monkeypatch, capsys) -> None:
        opts = env / "sw.opt"
        opts.write_text(sample_options)
        monkeypatch.setenv("OPTIONS_FILE", str(opts))
        assert ingest_policy.main([]) == 0
        assert "TIMEOUTALL 7200" in capsys.readouterr().out

    def test_usage(self, env, capsys) -> None:
        assert ingest_policy.main([]) == 1
        assert "Usage" in capsys.readouterr().err


class TestPackage:

    def test_version(self) -> None:
        import flexlm_analytics
        assert flexlm_analytics.VERSION == "1.0.0"
        assert "VERSION" in flexlm_analytics.__all__

"""Tests for analytics aggregation."""

import pytest

from flexlm_analytics import analyze, build_analytics, filter_sessions
from flexlm_analytics.analytics import (
    concurrency_samples, daily_peaks, denial_reasons, denials_frame, feature_daily_peaks,
    percent_half_up, sessions_frame,
)
from flexlm_analytics.models import DailyCount


class TestRollups:
    """Tests for per-user, per-feature and per-host rollups."""

    def test_user_stats(self, sample_result) -> None:
        a = analyze(sample_result)
        assert list(a.user_stats) == ["alice", "bob", "carol"]
        assert a.user_stats["alice"].sessions == 2
        assert a.user_stats["alice"].total_duration == pytest.approx(180.0)
        assert a.user_stats["carol"].sessions == 0
        assert a.user_stats["carol"].denials == 1

    def test_denial_without_checkout_counts_only_denials(self, make_denial) -> None:
        a = build_analytics((), (make_denial("carol", "cae_cwpro", "6/1/2024", "11:00:00"),))
        assert a.feature_stats["cae_cwpro"].denials == 1
        assert a.feature_stats["cae_cwpro"].checkouts == 0

    def test_feature_stats(self, sample_result) -> None:
        a = analyze(sample_result)
        assert a.feature_stats["solidworks"].checkouts == 2
        assert a.feature_stats["solidworks"].denials == 0
        assert a.feature_stats["cae_cwpro"].checkouts == 1
        assert a.feature_stats["cae_cwpro"].denials == 1
        assert a.denial_ratio == {"cae_cwpro": 50, "solidworks": 0}

    def test_host_stats(self, sample_result) -> None:
        a = analyze(sample_result)
        assert a.host_stats["WS1"].sessions == 2
        assert a.host_stats["WS1"].users == ("alice",)
        assert a.host_stats["WS2"].total_duration == pytest.approx(90.0)

    def test_summary(self, sample_result) -> None:
        s = analyze(sample_result).summary
        assert s.total_sessions == 3
        assert s.total_denials == 1
        assert s.unique_users == 3
        assert s.unique_features == 2
        assert s.denial_rate == 25.0
        assert s.avg_duration == pytest.approx(90.0)


class TestTimeSeries:
    """Tests for daily and hourly series and the duration histogram."""

    def test_daily_series(self, sample_result) -> None:
        a = analyze(sample_result)
        assert a.daily_checkouts == [DailyCount("2024-06-01", 3)]
        assert a.daily_denials == [DailyCount("2024-06-01", 1)]

    def test_hourly_has_24_buckets(self, sample_result) -> None:
        hourly = analyze(sample_result).hourly_checkouts
        assert len(hourly) == 24
        assert hourly[10] == 3
        assert sum(hourly) == 3

    def test_duration_bucket_edges(self, make_session) -> None:
        sessions = [
            make_session("a", "f", "6/1/2024 10:00", "6/1/2024 10:14"),
            make_session("b", "f", "6/1/2024 10:00", "6/1/2024 10:15"),
            make_session("c", "f", "6/1/2024 10:00", "6/1/2024 11:00"),
            make_session("d", "f", "6/1/2024 10:00", "6/1/2024 18:00"),
        ]
        hist = {b.label: b.count for b in build_analytics(sessions, ()).duration_histogram}
        assert hist == {"<15m": 1, "15m-1h": 1, "1-2h": 1, "2-4h": 0, "4-8h": 0, "8h+": 1}


class TestConcurrency:
    """Tests for the sweep-line peak computation."""

    def test_sample_daily_peak(self, sample_result) -> None:
        assert analyze(sample_result).daily_peak_concurrency == [DailyCount("2024-06-01", 3)]

    def test_back_to_back_sessions_do_not_overlap(self, make_session) -> None:
        sessions = [
            make_session("a", "f", "6/1/2024 10:00", "6/1/2024 11:00"),
            make_session("b", "f", "6/1/2024 11:00", "6/1/2024 12:00"),
        ]
        assert daily_peaks(sessions_frame(sessions)) == [DailyCount("2024-06-01", 1)]

    def test_zero_length_session_counts(self, make_session) -> None:
        sessions = [make_session("a", "f", "6/1/2024 10:00", "6/1/2024 10:00")]
        samples = concurrency_samples(sessions)["f"]
        assert min(samples) >= 0
        assert daily_peaks(sessions_frame(sessions)) == [DailyCount("2024-06-01", 1)]

    def test_zero_length_overlaps_same_instant_start(self, make_session) -> None:
        sessions = [
            make_session("a", "f", "6/1/2024 10:00", "6/1/2024 10:00"),
            make_session("b", "f", "6/1/2024 10:00", "6/1/2024 11:00"),
        ]
        samples = concurrency_samples(sessions)["f"]
        assert min(samples) >= 0
        assert max(samples) == 2

    def test_peak_per_day(self, make_session) -> None:
        sessions = [
            make_session("a", "f", "6/1/2024 10:00", "6/1/2024 12:00"),
            make_session("b", "f", "6/1/2024 11:00", "6/1/2024 13:00"),
            make_session("c", "f", "6/2/2024 09:00", "6/2/2024 10:00"),
        ]
        assert daily_peaks(sessions_frame(sessions)) == [
            DailyCount("2024-06-01", 2), DailyCount("2024-06-02", 1),
        ]

    def test_sample_series_bounds_daily_peaks(self, sample_result) -> None:
        samples = concurrency_samples(sample_result.sessions)
        for feat, daily in feature_daily_peaks(sample_result.sessions).items():
            assert max(samples[feat]) >= max(d.count for d in daily)


class TestCoUsage:
    """Tests for feature co-usage pairs."""

    def test_canonical_pair_order(self, make_session) -> None:
        sessions = [
            make_session("u1", "zeta", "6/1/2024 10:00", "6/1/2024 11:00"),
            make_session("u1", "alpha", "6/1/2024 10:00", "6/1/2024 11:00"),
            make_session("u2", "alpha", "6/1/2024 10:00", "6/1/2024 11:00"),
            make_session("u2", "zeta", "6/1/2024 10:00", "6/1/2024 11:00"),
            make_session("u2", "mid", "6/1/2024 10:00", "6/1/2024 11:00"),
        ]
        pairs = [(p.pair, p.users) for p in build_analytics(sessions, ()).co_usage]
        assert pairs == [("alpha + zeta", 2), ("alpha + mid", 1), ("mid + zeta", 1)]
        assert "zeta + alpha" not in {p for p, _ in pairs}

    def test_sample_co_usage(self, sample_result) -> None:
        pairs = analyze(sample_result).co_usage
        assert [(p.pair, p.users) for p in pairs] == [("cae_cwpro + solidworks", 1)]


class TestDenials:
    """Tests for denial ratio rounding and reason ranking."""

    def test_percent_half_up(self) -> None:
        assert percent_half_up(1, 8) == 13
        assert percent_half_up(1, 3) == 33
        assert percent_half_up(1, 2) == 50

    def test_reasons_ranked_ties_first_seen(self, make_denial) -> None:
        denials = [
            make_denial("a", "f", "6/1/2024", "10:00:00", reason="B"),
            make_denial("b", "f", "6/1/2024", "10:01:00", reason="A"),
            make_denial("c", "f", "6/1/2024", "10:02:00", reason="A"),
            make_denial("d", "f", "6/1/2024", "10:03:00", reason="C"),
            make_denial("e", "f", "6/1/2024", "10:04:00", reason=None),
        ]
        ranked = denial_reasons(denials_frame(denials))
        assert [(r.reason, r.count) for r in ranked] == [("A", 2), ("B", 1), ("C", 1)]


class TestPurityAndFiltering:
    """Tests for recomputation and filtering."""

    def test_recompute_is_identical(self, sample_result) -> None:
        first = build_analytics(sample_result.sessions, sample_result.denials)
        second = build_analytics(sample_result.sessions, sample_result.denials)
        assert first == second

    def test_empty_inputs(self) -> None:
        a = build_analytics((), ())
        assert a.is_empty
        assert a.hourly_checkouts == [0] * 24
        assert all(b.count == 0 for b in a.duration_histogram)
        assert a.summary.total_sessions == 0
        assert a.summary.denial_rate == 0.0
        assert a.co_usage == []
        assert a.daily_peak_concurrency == []

    def test_filter_by_user(self, sample_result) -> None:
        sessions, denials = filter_sessions(sample_result.sessions, sample_result.denials,
                                            users=["alice"])
        assert {s.user for s in sessions} == {"alice"}
        assert denials == ()

    def test_analyze_by_feature(self, sample_result) -> None:
        a = analyze(sample_result, features=["cae_cwpro"])
        assert list(a.feature_stats) == ["cae_cwpro"]
        assert a.summary.total_sessions == 1
        assert a.summary.total_denials == 1

    def test_no_filter_keeps_everything(self, sample_result) -> None:
        sessions, denials = filter_sessions(sample_result.sessions, sample_result.denials)
        assert sessions == sample_result.sessions
        assert denials == sample_result.denials

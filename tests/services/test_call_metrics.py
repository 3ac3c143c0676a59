from unittest.mock import patch

from userphone.services.call_metrics import CallMetrics


class TestCallMetrics:
    """Unit tests for CallMetrics."""

    def test_empty_stats(self) -> None:
        stats = CallMetrics().get_stats()

        assert stats.average_command_time_ms == 0.0
        assert stats.average_matching_time_ms == 0.0
        assert stats.matching_success_rate == 1.0
        assert stats.command_sla_exceeded is False
        assert stats.matching_sla_exceeded is False

    def test_window_keeps_last_samples(self) -> None:
        metrics = CallMetrics(window=3)
        for duration in (100, 200, 300, 400):
            metrics.record_command_time(duration)

        assert list(metrics.command_times) == [200, 300, 400]
        assert metrics.get_stats().average_command_time_ms == 300

    def test_command_sla_flag(self) -> None:
        metrics = CallMetrics(command_sla_ms=1000)
        metrics.record_command_time(1500)
        metrics.record_command_time(700)

        assert metrics.get_stats().command_sla_exceeded is True

    def test_matching_success_rate_counts_matches_within_sla(self) -> None:
        metrics = CallMetrics(matching_sla_ms=10000)
        metrics.record_matching_time(10000)
        metrics.record_matching_time(10001)

        report = metrics.get_detailed_report()

        assert metrics.matching_success_rate == 0.5
        assert report.matching_metrics.success_rate == 0.5
        assert report.matching_metrics.average == 10000.5

    def test_timer_records_command_sample(self) -> None:
        metrics = CallMetrics()
        with patch(
            "userphone.services.call_metrics.time.perf_counter",
            side_effect=[1.0, 1.25],
        ):
            stop = metrics.start_timer("command")
            duration = stop()

        assert duration == 250.0
        assert list(metrics.command_times) == [250.0]
        assert list(metrics.matching_times) == []

    def test_timer_for_other_operations_is_not_sampled(self) -> None:
        metrics = CallMetrics()

        metrics.start_timer("webhook")()

        assert list(metrics.command_times) == []
        assert list(metrics.matching_times) == []

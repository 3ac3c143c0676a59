import time
from collections import deque
from typing import Callable, Deque

import structlog

from userphone.models.api.metrics import (
    CommandMetricsReport,
    DetailedMetricsReport,
    MatchingMetricsReport,
    MetricsStats,
)

logger = structlog.get_logger(__name__)


def _average(values: Deque[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


class CallMetrics:
    """Rolling latency samples for call commands and matching.

    Purely observational: recording never raises and never changes control flow.
    """

    def __init__(
        self,
        window: int = 100,
        command_sla_ms: float = 1000,
        matching_sla_ms: float = 10000,
    ):
        self.command_times: Deque[float] = deque(maxlen=window)
        self.matching_times: Deque[float] = deque(maxlen=window)
        self.command_sla_ms = command_sla_ms
        self.matching_sla_ms = matching_sla_ms
        self.successful_matches = 0
        self.total_matches = 0

    def start_timer(self, operation: str) -> Callable[[], float]:
        """Start timing ``operation``; call the returned function to record it.

        ``"command"`` and ``"matching"`` samples go into their windows; other
        operations are only logged at debug level.
        """
        start = time.perf_counter()

        def stop() -> float:
            duration_ms = (time.perf_counter() - start) * 1000
            if operation == "command":
                self.record_command_time(duration_ms)
            elif operation == "matching":
                self.record_matching_time(duration_ms)
            else:
                logger.debug(
                    "Timer completed", operation=operation, duration_ms=duration_ms
                )
            return duration_ms

        return stop

    def record_command_time(self, duration_ms: float, command: str = "generic") -> None:
        self.command_times.append(duration_ms)
        if duration_ms > self.command_sla_ms:
            logger.warning(
                "Command exceeded SLA",
                command=command,
                duration_ms=round(duration_ms, 2),
                sla_ms=self.command_sla_ms,
            )

    def record_matching_time(self, duration_ms: float) -> None:
        self.matching_times.append(duration_ms)
        self.total_matches += 1
        if duration_ms <= self.matching_sla_ms:
            self.successful_matches += 1
        else:
            logger.warning(
                "Matching exceeded SLA",
                duration_ms=round(duration_ms, 2),
                sla_ms=self.matching_sla_ms,
            )

    @property
    def matching_success_rate(self) -> float:
        if self.total_matches == 0:
            return 1.0
        return self.successful_matches / self.total_matches

    def get_stats(self) -> MetricsStats:
        average_command = _average(self.command_times)
        average_matching = _average(self.matching_times)
        return MetricsStats(
            average_command_time_ms=average_command,
            average_matching_time_ms=average_matching,
            matching_success_rate=self.matching_success_rate,
            command_sla_exceeded=average_command > self.command_sla_ms,
            matching_sla_exceeded=average_matching > self.matching_sla_ms,
        )

    def get_detailed_report(self) -> DetailedMetricsReport:
        return DetailedMetricsReport(
            command_metrics=CommandMetricsReport(average=_average(self.command_times)),
            matching_metrics=MatchingMetricsReport(
                average=_average(self.matching_times),
                success_rate=self.matching_success_rate,
            ),
        )

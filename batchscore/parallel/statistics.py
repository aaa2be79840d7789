"""
Statistics Aggregator for batchscore.

Computes batch-level timing and success metrics from row results. The
final numbers come from ``StatisticsAggregator`` once the batch is done;
``RunningStatistics`` keeps the same numbers up to date while results are
still arriving.

Note:
    ``total_runtime_ms`` is never derived from the results. Row durations
    overlap under concurrency, so the caller measures wall-clock time around
    the whole batch and passes it in.
"""

from __future__ import annotations

import bisect
from typing import Iterable, Sequence

from ..types import BatchStatistics, RowResult


def median(values: Iterable[float]) -> float:
    """Median of ``values``; the mean of the two middle values for even counts."""
    ordered = sorted(values)
    if not ordered:
        raise ValueError("median of an empty sequence is undefined")
    return _sorted_median(ordered)


def _sorted_median(ordered: Sequence[float]) -> float:
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def _is_error(result: RowResult) -> bool:
    return result.error is not None


class StatisticsAggregator:
    """Builds BatchStatistics from a completed result list."""

    def aggregate(
        self,
        results: Sequence[RowResult],
        total_runtime_ms: float,
    ) -> BatchStatistics:
        """
        Compute statistics for a finished batch.

        Args:
            results: Completed results (left untouched)
            total_runtime_ms: Wall-clock duration of the batch

        Returns:
            BatchStatistics for the batch

        Raises:
            ValueError: If ``results`` is empty
        """
        if not results:
            raise ValueError("Cannot aggregate statistics for an empty batch")

        latencies = [r.execution_time_ms for r in results]
        success_count = sum(1 for r in results if r.success)
        error_count = sum(1 for r in results if _is_error(r))
        total = len(results)

        return BatchStatistics(
            total_runtime_ms=total_runtime_ms,
            avg_request_time_ms=sum(latencies) / total,
            fastest_response_ms=min(latencies),
            slowest_response_ms=max(latencies),
            median_response_ms=median(latencies),
            total_requests=total,
            success_count=success_count,
            error_count=error_count,
            success_rate_percent=success_count / total * 100,
        )


class RunningStatistics:
    """
    Incrementally maintained statistics for a batch in progress.

    Latencies are kept sorted on insertion, so a snapshot taken after the
    last result matches what StatisticsAggregator computes for the batch.
    """

    def __init__(self) -> None:
        self._latencies: list[float] = []
        self._total_latency = 0.0
        self._success_count = 0
        self._error_count = 0

    @property
    def count(self) -> int:
        return len(self._latencies)

    def add(self, result: RowResult) -> None:
        bisect.insort(self._latencies, result.execution_time_ms)
        self._total_latency += result.execution_time_ms
        if result.success:
            self._success_count += 1
        if _is_error(result):
            self._error_count += 1

    def snapshot(self, elapsed_ms: float) -> BatchStatistics | None:
        """Statistics over the results seen so far, or None before the first one."""
        total = len(self._latencies)
        if total == 0:
            return None
        return BatchStatistics(
            total_runtime_ms=elapsed_ms,
            avg_request_time_ms=self._total_latency / total,
            fastest_response_ms=self._latencies[0],
            slowest_response_ms=self._latencies[-1],
            median_response_ms=_sorted_median(self._latencies),
            total_requests=total,
            success_count=self._success_count,
            error_count=self._error_count,
            success_rate_percent=self._success_count / total * 100,
        )

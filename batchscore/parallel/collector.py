"""
Result Collector for batchscore.

Accumulates row results as workers finish them. Completion order is
arbitrary, so ordering by ``row_index`` is restored here, both for the live
view observers see mid-batch and for the final list.
"""

from __future__ import annotations

import logging
from typing import Callable

from ..exceptions import ConsistencyError
from ..types import RowResult

logger = logging.getLogger(__name__)

ProgressHook = Callable[[list[RowResult]], None]


class ResultCollector:
    """
    Write-once store of results keyed by row index.

    Example:
        >>> collector = ResultCollector(expected_count=3, on_progress=print)
        >>> collector.collect(result)
        >>> collector.live_snapshot()
    """

    def __init__(self, expected_count: int, on_progress: ProgressHook | None = None) -> None:
        self._expected_count = expected_count
        self._on_progress = on_progress
        self._results: dict[int, RowResult] = {}
        self._live: list[RowResult] = []

    @property
    def expected_count(self) -> int:
        return self._expected_count

    @property
    def completed_count(self) -> int:
        return len(self._results)

    def collect(self, result: RowResult) -> None:
        """
        Store a result and notify the progress hook.

        Raises:
            ConsistencyError: If the row index is out of range or already stored
        """
        index = result.row_index
        if not 0 <= index < self._expected_count:
            raise ConsistencyError(
                f"Row index {index} outside batch of {self._expected_count} rows"
            )
        if index in self._results:
            raise ConsistencyError(f"Duplicate result for row index {index}")

        self._results[index] = result
        self._live = sorted(self._results.values(), key=lambda r: r.row_index)

        if self._on_progress is not None:
            self._on_progress(list(self._live))

    def live_snapshot(self) -> list[RowResult]:
        """All results collected so far, ascending by row index."""
        return sorted(self._live, key=lambda r: r.row_index)

    def finalize(self) -> list[RowResult]:
        """
        Return the complete ordered result list.

        Raises:
            ConsistencyError: If any row is missing a result
        """
        if len(self._results) != self._expected_count:
            raise ConsistencyError(
                f"Expected {self._expected_count} results, collected {len(self._results)}"
            )
        return [self._results[index] for index in range(self._expected_count)]

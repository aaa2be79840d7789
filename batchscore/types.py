from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

Row = Mapping[str, Any]


class BatchState(Enum):
    """Lifecycle of a single batch."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    AGGREGATED = "aggregated"


@dataclass(frozen=True)
class StepOutput:
    """Normalized response of a scoring step."""

    module_id: str
    step_id: str
    execution_state: str
    outputs: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RowResult:
    """Outcome of scoring one row.

    Attributes:
        row_index: 0-based position of the row in the submitted batch
        input: The row that was scored
        output: Normalized endpoint response (None on failure)
        error: Failure description (None on success)
        execution_time_ms: Duration of the endpoint call in milliseconds
    """

    row_index: int
    input: Row
    output: Any = None
    error: Optional[str] = None
    execution_time_ms: float = 0.0

    def __post_init__(self) -> None:
        if (self.output is None) == (self.error is None):
            raise ValueError(
                f"Row {self.row_index}: exactly one of output/error must be set"
            )

    @property
    def success(self) -> bool:
        return self.output is not None and self.error is None


@dataclass(frozen=True)
class BatchStatistics:
    """Aggregate metrics for a completed (or partially completed) batch.

    Attributes:
        total_runtime_ms: Wall-clock time from batch start to last result
        avg_request_time_ms: Mean endpoint call duration
        fastest_response_ms: Shortest endpoint call duration
        slowest_response_ms: Longest endpoint call duration
        median_response_ms: Median endpoint call duration
        total_requests: Number of results
        success_count: Results carrying an output
        error_count: Results carrying an error
        success_rate_percent: success_count / total_requests * 100
    """

    total_runtime_ms: float
    avg_request_time_ms: float
    fastest_response_ms: float
    slowest_response_ms: float
    median_response_ms: float
    total_requests: int
    success_count: int
    error_count: int
    success_rate_percent: float

    @property
    def throughput_rps(self) -> float:
        if self.total_runtime_ms <= 0:
            return 0.0
        return self.total_requests / (self.total_runtime_ms / 1000)

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["throughput_rps"] = self.throughput_rps
        return data


@dataclass
class BatchReport:
    """Ordered results plus statistics returned to the caller."""

    results: List[RowResult]
    statistics: BatchStatistics
    concurrency: int

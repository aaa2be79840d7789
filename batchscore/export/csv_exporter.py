"""
CSV export of batch results.

Column layout of the results file:
    Row, Status, Input_<name>..., Output_<name>..., Error

Input columns come from the first result's row, output columns from the
first successful result. Data cells are always quoted; header names are
quoted only when they contain a delimiter or quote.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence

from ..types import BatchReport, BatchStatistics, RowResult, StepOutput

logger = logging.getLogger(__name__)

FAILED_STATUS = "Failed"
UNKNOWN_STATUS = "Unknown"


def _output_values(output: Any) -> Mapping[str, Any]:
    if isinstance(output, StepOutput):
        return output.outputs
    if isinstance(output, Mapping):
        outputs = output.get("outputs")
        # raw MAS payload: list of {"name", "value"} variables
        if isinstance(outputs, list):
            return {v.get("name"): v.get("value") for v in outputs if isinstance(v, Mapping)}
        return output
    return {"value": output}


def _status(result: RowResult) -> str:
    if result.error is not None:
        return FAILED_STATUS
    if isinstance(result.output, StepOutput):
        return result.output.execution_state or UNKNOWN_STATUS
    if isinstance(result.output, Mapping):
        return str(result.output.get("executionState") or UNKNOWN_STATUS)
    return UNKNOWN_STATUS


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(_cell(v) for v in value)
    return str(value)


def result_columns(results: Sequence[RowResult]) -> tuple[List[str], List[str]]:
    """Input and output parameter names used as CSV columns."""
    input_names = list(results[0].input.keys()) if results else []
    output_names: List[str] = []
    for result in results:
        if result.output is not None:
            output_names = [str(name) for name in _output_values(result.output).keys()]
            break
    return input_names, output_names


def results_to_csv(results: Sequence[RowResult]) -> str:
    """Serialize ordered results to CSV text."""
    input_names, output_names = result_columns(results)
    buffer = io.StringIO()
    header = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    header.writerow(
        ["Row", "Status"]
        + [f"Input_{name}" for name in input_names]
        + [f"Output_{name}" for name in output_names]
        + ["Error"]
    )
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")

    for result in results:
        outputs = _output_values(result.output) if result.output is not None else {}
        writer.writerow(
            [str(result.row_index + 1), _status(result)]
            + [_cell(result.input.get(name)) for name in input_names]
            + [_cell(outputs.get(name)) for name in output_names]
            + [result.error or ""]
        )
    return buffer.getvalue()


def statistics_to_csv(statistics: BatchStatistics) -> str:
    """Serialize batch statistics as ``metric,value`` rows."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["metric", "value"])
    for name, value in statistics.as_dict().items():
        writer.writerow([name, value])
    return buffer.getvalue()


def save_report(
    report: BatchReport,
    output_dir: Path | str,
    name: str = "batch",
) -> Dict[str, Path]:
    """
    Write a report's results CSV and statistics JSON.

    Args:
        report: Completed batch report
        output_dir: Directory for the files (created if missing)
        name: File name prefix

    Returns:
        Mapping of "results"/"statistics" to the written paths
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    results_path = out / f"{name}_results.csv"
    results_path.write_text(results_to_csv(report.results), encoding="utf-8")

    stats_path = out / f"{name}_statistics.json"
    data = {"concurrency": report.concurrency, "statistics": report.statistics.as_dict()}
    with open(stats_path, "w") as f:
        json.dump(data, f, indent=2)

    logger.info("Saved batch report to %s", out)
    return {"results": results_path, "statistics": stats_path}

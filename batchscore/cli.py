"""
Command line entry point: score the rows of a CSV file against a MAS step.

    python -m batchscore.cli rows.csv --config batch.yaml --concurrency 4
"""

from __future__ import annotations

import argparse
import asyncio
import csv
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .config import RunnerConfig, load_runner_config
from .exceptions import BatchScoreError
from .export import save_report
from .parallel import BatchRunner
from .scoring import MasClient, MasStepEndpoint, coerce_rows
from .tracking import MlflowLogger
from .types import BatchReport
from .utils import format_duration, setup_logging_from_config

logger = logging.getLogger(__name__)


def read_rows_csv(path: str | Path) -> List[Dict[str, Any]]:
    """Read rows keyed by header name; empty cells become None."""
    with open(path, newline="", encoding="utf-8-sig") as f:
        reader = csv.DictReader(f)
        return [
            {key: (value if value != "" else None) for key, value in record.items()}
            for record in reader
        ]


async def run_from_config(config: RunnerConfig, records: Sequence[Dict[str, Any]]) -> BatchReport:
    """Score CSV records against the configured step.

    The step's declared inputs decide which column feeds each input and
    the type each cell is converted to.
    """
    if not (config.viya_url and config.module_id and config.step_id):
        raise BatchScoreError("viya_url, module_id and step_id must be configured")

    client = MasClient(
        config.viya_url,
        access_token=config.access_token,
        timeout=config.timeout_per_request or 30.0,
    )
    loop = asyncio.get_running_loop()
    try:
        parameters = await loop.run_in_executor(
            None, client.get_step_inputs, config.module_id, config.step_id
        )
    except BaseException:
        client.close()
        raise
    logger.info(
        "Step %s/%s declares %d inputs", config.module_id, config.step_id, len(parameters)
    )

    endpoint = MasStepEndpoint(
        client,
        config.module_id,
        config.step_id,
        input_names=[param.name for param in parameters],
        max_workers=MasStepEndpoint.threads_for_concurrency(config.concurrency),
    )
    rows = coerce_rows(records, parameters)
    async with BatchRunner.from_config(config, endpoint, tracker=MlflowLogger()) as runner:
        return await runner.run_batch(rows)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Score CSV rows against a MAS step.")
    parser.add_argument("rows", help="CSV file with one row per scoring request")
    parser.add_argument("--config", help="Path to runner config YAML")
    parser.add_argument("--concurrency", type=int, help="Concurrent requests")
    parser.add_argument("--output-dir", help="Directory for results")
    parser.add_argument("--log-level", help="Logging level")
    args = parser.parse_args(argv)

    try:
        config = load_runner_config(args.config)
        if args.concurrency is not None:
            config.concurrency = args.concurrency
        if args.output_dir:
            config.output_dir = args.output_dir
        config.validate()
    except BatchScoreError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    setup_logging_from_config(config, level=args.log_level)

    try:
        records = read_rows_csv(args.rows)
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        print(f"Cannot read rows from {args.rows}: {e}", file=sys.stderr)
        return 2

    try:
        report = asyncio.run(run_from_config(config, records))
    except BatchScoreError as e:
        print(f"Batch not started: {e}", file=sys.stderr)
        return 2

    paths = save_report(report, config.output_dir, name=Path(args.rows).stem)
    stats = report.statistics
    print(
        f"Scored {stats.total_requests} rows in {format_duration(stats.total_runtime_ms)}: "
        f"{stats.success_count} succeeded, {stats.error_count} failed "
        f"({stats.success_rate_percent:.1f}%)."
    )
    print(f"Results written to {paths['results']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

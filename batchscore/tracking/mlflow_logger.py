from __future__ import annotations

import os
import uuid
from typing import Any, Dict, Optional

from ..types import BatchStatistics


class MlflowLogger:
    """
    Optional MLflow logger for batch runs. Enabled by setting
    BATCHSCORE_ENABLE_MLFLOW=1 and installing the mlflow package.
    """

    def __init__(self) -> None:
        self._enabled = os.getenv("BATCHSCORE_ENABLE_MLFLOW", "0").lower() in (
            "1",
            "true",
            "yes",
        )
        self._mlflow = None
        self._run_name = os.getenv("BATCHSCORE_MLFLOW_RUN_NAME", "batchscore")
        if self._enabled:
            try:
                import mlflow  # type: ignore

                self._mlflow = mlflow
            except ImportError:
                self._enabled = False
                self._mlflow = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    def log_batch(
        self,
        statistics: BatchStatistics,
        params: Optional[Dict[str, Any]] = None,
    ) -> None:
        if not (self._enabled and self._mlflow):
            return
        metrics = {k: float(v) for k, v in statistics.as_dict().items()}
        summary = {"params": dict(params or {}), "statistics": statistics.as_dict()}

        def action() -> None:
            if params:
                self._mlflow.log_params(params)
            self._mlflow.log_metrics(metrics)
            self._mlflow.log_dict(summary, f"batches/summary_{uuid.uuid4().hex}.json")

        self._in_run(action)

    def _in_run(self, action) -> None:
        assert self._mlflow is not None

        active = self._mlflow.active_run()
        if active:
            action()
            return

        with self._mlflow.start_run(run_name=self._run_name):
            action()

"""
Runner configuration.

Settings come from an optional YAML file, then environment variables
(a ``.env`` file in the working directory is loaded first):

    BATCHSCORE_VIYA_URL / SAS_VIYA_URL: SAS Viya server URL
    BATCHSCORE_ACCESS_TOKEN: Bearer token for the MAS API
    BATCHSCORE_MODULE_ID, BATCHSCORE_STEP_ID: Step to score against
    BATCHSCORE_CONCURRENCY: Concurrent requests per batch
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import find_dotenv, load_dotenv

from .exceptions import ConfigError

KNOWN_KEYS = {
    "viya_url",
    "module_id",
    "step_id",
    "concurrency",
    "timeout_per_request",
    "requests_per_minute",
    "burst_size",
    "access_token",
    "output_dir",
    "log_level",
    "log_file",
}


@dataclass
class RunnerConfig:
    viya_url: Optional[str] = None
    module_id: Optional[str] = None
    step_id: Optional[str] = None
    concurrency: int = 2
    timeout_per_request: Optional[float] = 30.0
    requests_per_minute: Optional[int] = None
    burst_size: Optional[int] = None
    access_token: Optional[str] = None
    output_dir: str = "./results"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> "RunnerConfig":
        if isinstance(self.concurrency, bool) or not isinstance(self.concurrency, int):
            raise ConfigError(f"concurrency must be an integer, got {self.concurrency!r}")
        if self.concurrency < 1:
            raise ConfigError(f"concurrency must be at least 1, got {self.concurrency}")
        if self.timeout_per_request is not None and self.timeout_per_request <= 0:
            raise ConfigError("timeout_per_request must be positive")
        if self.requests_per_minute is not None and self.requests_per_minute <= 0:
            raise ConfigError("requests_per_minute must be positive")
        if self.burst_size is not None and self.burst_size <= 0:
            raise ConfigError("burst_size must be positive")
        return self


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    try:
        return int(value)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from e


def apply_env_overrides(config: RunnerConfig) -> RunnerConfig:
    viya_url = os.getenv("BATCHSCORE_VIYA_URL") or os.getenv("SAS_VIYA_URL")
    if viya_url and viya_url.strip():
        config.viya_url = viya_url.strip()
    for attr, name in (
        ("access_token", "BATCHSCORE_ACCESS_TOKEN"),
        ("module_id", "BATCHSCORE_MODULE_ID"),
        ("step_id", "BATCHSCORE_STEP_ID"),
    ):
        value = os.getenv(name)
        if value:
            setattr(config, attr, value)
    concurrency = _env_int("BATCHSCORE_CONCURRENCY")
    if concurrency is not None:
        config.concurrency = concurrency
    return config


def load_runner_config(path: str | Path | None = None, use_env: bool = True) -> RunnerConfig:
    data: Dict[str, Any] = {}
    if path is not None:
        loaded = yaml.safe_load(Path(path).read_text())
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"{path}: expected a mapping at the top level")
        data = loaded

    config = RunnerConfig(
        **{k: v for k, v in data.items() if k in KNOWN_KEYS},
        extra={k: v for k, v in data.items() if k not in KNOWN_KEYS},
    )
    if use_env:
        load_dotenv(find_dotenv(usecwd=True))
        apply_env_overrides(config)
    return config.validate()

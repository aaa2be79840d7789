"""Scoring endpoints."""

from .endpoint import CallableEndpoint, ScoringEndpoint, as_endpoint
from .mas_client import MasClient, MasStepEndpoint, build_step_input, parse_step_output
from .step_inputs import StepParameter, coerce_rows, convert_value, map_columns

__all__ = [
    "ScoringEndpoint",
    "CallableEndpoint",
    "as_endpoint",
    "MasClient",
    "MasStepEndpoint",
    "build_step_input",
    "parse_step_output",
    "StepParameter",
    "coerce_rows",
    "convert_value",
    "map_columns",
]

"""
Typed step inputs from tabular rows.

CSV cells arrive as text; MAS steps declare a type per input
(``decimal``, ``integer``, ``bigint``, ``string`` and their ``*Array``
forms). Scalars are parsed leniently (leading numeric prefix, otherwise 0),
array cells are split on ``;``. Empty cells become null.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

ARRAY_SEPARATOR = ";"

_FLOAT_PREFIX = re.compile(r"\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_INT_PREFIX = re.compile(r"\s*[+-]?\d+")

_DECIMAL_TYPES = {"decimal"}
_INTEGER_TYPES = {"integer", "bigint"}


@dataclass(frozen=True)
class StepParameter:
    """A declared step input (or output) variable."""

    name: str
    type: str = "string"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StepParameter":
        return cls(name=str(data["name"]), type=str(data.get("type") or "string"))


def parse_parameters(step: Mapping[str, Any]) -> List[StepParameter]:
    """Declared inputs of a MAS step document."""
    return [StepParameter.from_dict(param) for param in step.get("inputs") or []]


def parse_decimal(text: str) -> float:
    match = _FLOAT_PREFIX.match(text)
    if not match:
        return 0.0
    value = float(match.group())
    return value if math.isfinite(value) else 0.0


def parse_integer(text: str) -> int:
    match = _INT_PREFIX.match(text)
    return int(match.group()) if match else 0


def _convert_scalar(text: str, type_name: str) -> Any:
    if type_name in _DECIMAL_TYPES:
        return parse_decimal(text)
    if type_name in _INTEGER_TYPES:
        return parse_integer(text)
    return text


def convert_value(value: Any, type_name: str) -> Any:
    """Convert one cell to the declared input type.

    Non-string values are assumed to be typed already and pass through.
    Unknown types (``binary`` included) keep the text as is.
    """
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        return value
    if type_name.endswith("Array"):
        element_type = type_name[: -len("Array")]
        return [
            _convert_scalar(item.strip(), element_type)
            for item in value.split(ARRAY_SEPARATOR)
        ]
    return _convert_scalar(value, type_name)


def _normalize(name: str) -> str:
    return re.sub(r"[_\s-]", "", name.lower())


def map_columns(
    headers: Sequence[str],
    parameters: Sequence[StepParameter],
) -> Dict[str, Optional[str]]:
    """
    Match each parameter to a CSV header.

    Names are compared case-insensitively ignoring ``_``, ``-`` and
    whitespace. An exact match wins; otherwise the first header containing
    (or contained in) the parameter name is used. Unmatched parameters map
    to None.
    """
    normalized = [_normalize(h) for h in headers]
    mapping: Dict[str, Optional[str]] = {}
    for param in parameters:
        key = _normalize(param.name)
        index = next((i for i, h in enumerate(normalized) if h == key), None)
        if index is None:
            index = next(
                (i for i, h in enumerate(normalized) if h and (key in h or h in key)),
                None,
            )
        mapping[param.name] = headers[index] if index is not None else None
    return mapping


def coerce_row(
    record: Mapping[str, Any],
    parameters: Sequence[StepParameter],
    mapping: Mapping[str, Optional[str]],
) -> Dict[str, Any]:
    """Build a typed row keyed by parameter name; unmapped parameters are omitted."""
    row: Dict[str, Any] = {}
    for param in parameters:
        header = mapping.get(param.name)
        if header is None or header not in record:
            continue
        row[param.name] = convert_value(record[header], param.type)
    return row


def coerce_rows(
    records: Sequence[Mapping[str, Any]],
    parameters: Sequence[StepParameter],
) -> List[Dict[str, Any]]:
    """Map CSV records onto step parameters and convert every cell."""
    if not records:
        return []
    mapping = map_columns(list(records[0].keys()), parameters)
    unmapped = [name for name, header in mapping.items() if header is None]
    if unmapped:
        logger.warning("No CSV column for step inputs: %s (sent as null)", ", ".join(unmapped))
    return [coerce_row(record, parameters, mapping) for record in records]

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol, Union, runtime_checkable

from ..types import Row


@runtime_checkable
class ScoringEndpoint(Protocol):
    """Anything that can score a single row asynchronously."""

    async def score(self, row: Row) -> Any:
        ...


class CallableEndpoint:
    """Adapts a plain coroutine function to the ScoringEndpoint protocol."""

    def __init__(self, fn: Callable[[Row], Awaitable[Any]]) -> None:
        self._fn = fn

    async def score(self, row: Row) -> Any:
        return await self._fn(row)


EndpointLike = Union[ScoringEndpoint, Callable[[Row], Awaitable[Any]]]


def as_endpoint(endpoint: EndpointLike) -> ScoringEndpoint:
    if isinstance(endpoint, ScoringEndpoint):
        return endpoint
    if callable(endpoint):
        return CallableEndpoint(endpoint)
    raise TypeError(
        f"Expected a ScoringEndpoint or coroutine function, got {type(endpoint).__name__}"
    )

"""Provider abstraction shared by every vendor adapter."""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from promptgate.core.errors import NoContent, ProviderError
from promptgate.core.token_counter import TokenCounts

__all__ = [
    "NoContent",
    "Provider",
    "ProviderError",
    "ProviderRequest",
    "ProviderResponse",
    "Stopwatch",
    "parse_json_schema",
]


@dataclass(frozen=True)
class ProviderRequest:
    """Canonical request consumed by every adapter."""
    api_key: str
    model: str
    instruction: str
    question: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    prompt_price: float = 0.0
    completion_price: float = 0.0
    base_url: Optional[str] = None

    @property
    def tools(self) -> List[Dict[str, Any]]:
        """Function tool definitions; entries that are not mappings are skipped."""
        tools = self.parameters.get("tools")
        if not isinstance(tools, list):
            return []
        return [tool for tool in tools if isinstance(tool, dict)]


@dataclass(frozen=True)
class ProviderResponse:
    """Canonical response produced by every adapter."""
    answer: str
    tokens: TokenCounts
    response_time_ms: int
    chain_of_thoughts: Optional[str] = None
    status: Optional[str] = None


class Provider:
    """One vendor backend. Adapters do not retry or cache."""

    name: str

    async def dispatch(self, request: ProviderRequest) -> ProviderResponse:  # pragma: no cover - interface
        raise NotImplementedError


class Stopwatch:
    """Wall-clock latency from just before the call to response receipt."""

    def __init__(self) -> None:
        self._start = time.monotonic()

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)


def parse_json_schema(schema: Any) -> Any:
    """Parse a JSON schema stored as text, preserving key order.

    Unparseable text is returned as-is.
    """
    if isinstance(schema, str):
        try:
            return json.loads(schema)
        except json.JSONDecodeError:
            return schema
    return schema

"""Anthropic Claude provider."""
import json
from typing import Any, Dict, List, Optional

import httpx

from promptgate.core.token_counter import TokenCounts, coerce_token_count

from .base import NoContent, Provider, ProviderRequest, ProviderResponse, Stopwatch
from .http import build_async_client, read_vendor_json

DEFAULT_BASE_URL = "https://api.anthropic.com"
DEFAULT_MAX_TOKENS = 4096


def _tool_definition(tool: Dict[str, Any]) -> Dict[str, Any]:
    definition = {
        "name": tool.get("name"),
        "input_schema": tool.get("parameters") or {"type": "object"},
    }
    if tool.get("description"):
        definition["description"] = tool["description"]
    return definition


def _answer_from_block(block: Dict[str, Any]) -> str:
    if block.get("type") == "tool_use":
        return json.dumps({"name": block.get("name"), "arguments": json.dumps(block.get("input", {}))})
    return block.get("text", "")


class AnthropicProvider(Provider):
    name = "anthropic"

    def __init__(
        self,
        base_url: Optional[str] = None,
        version: str = "2023-06-01",
        timeout: float = 600.0,
        max_retries: int = 5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url or DEFAULT_BASE_URL
        self.version = version
        self.timeout = timeout
        self.max_retries = max_retries
        self._transport = transport

    def build_payload(self, request: ProviderRequest) -> Dict[str, Any]:
        params = request.parameters
        payload: Dict[str, Any] = {
            "model": request.model,
            "max_tokens": params.get("max_tokens") or DEFAULT_MAX_TOKENS,
            "messages": [{"role": "user", "content": request.question}],
        }
        if request.instruction:
            payload["system"] = request.instruction
        if params.get("temperature") is not None:
            payload["temperature"] = params["temperature"]
        if request.tools:
            payload["tools"] = [_tool_definition(tool) for tool in request.tools]
        return payload

    async def dispatch(self, request: ProviderRequest) -> ProviderResponse:
        headers = {
            "x-api-key": request.api_key,
            "anthropic-version": self.version,
            "content-type": "application/json",
        }
        client = build_async_client(
            request.base_url or self.base_url, self.timeout, self.max_retries, self._transport
        )
        async with client:
            stopwatch = Stopwatch()
            response = await client.post("/v1/messages", headers=headers, json=self.build_payload(request))
            elapsed_ms = stopwatch.elapsed_ms()
        data = read_vendor_json("Anthropic", response)

        content: List[Dict[str, Any]] = data.get("content") or []
        block = next((b for b in content if b.get("type") in ("text", "tool_use")), None)
        if block is None:
            raise NoContent("No message from Anthropic")

        thinking = [b.get("thinking", "") for b in content if b.get("type") == "thinking"]
        usage = data.get("usage") or {}
        prompt_tokens = coerce_token_count(usage.get("input_tokens"))
        completion_tokens = coerce_token_count(usage.get("output_tokens"))
        return ProviderResponse(
            answer=_answer_from_block(block),
            tokens=TokenCounts(
                prompt=prompt_tokens,
                completion=completion_tokens,
                total=prompt_tokens + completion_tokens,
            ),
            response_time_ms=elapsed_ms,
            chain_of_thoughts="\n".join(t for t in thinking if t) or None,
            status=data.get("stop_reason"),
        )

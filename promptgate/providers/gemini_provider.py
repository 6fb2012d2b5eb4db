"""Google Gemini provider."""
import json
from typing import Any, Dict, List, Optional

import httpx

from promptgate.core.token_counter import TokenCounts, coerce_token_count

from .base import NoContent, Provider, ProviderRequest, ProviderResponse, Stopwatch, parse_json_schema
from .http import build_async_client, read_vendor_json

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"


class GeminiProvider(Provider):
    name = "gemini"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 600.0,
        max_retries: int = 5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url or DEFAULT_BASE_URL
        self.timeout = timeout
        self.max_retries = max_retries
        self._transport = transport

    def build_payload(self, request: ProviderRequest) -> Dict[str, Any]:
        params = request.parameters
        generation: Dict[str, Any] = {}
        if params.get("temperature") is not None:
            generation["temperature"] = params["temperature"]
        if params.get("max_tokens") is not None:
            generation["maxOutputTokens"] = params["max_tokens"]

        response_format = params.get("response_format")
        if response_format in ("json_object", "json_schema"):
            generation["responseMimeType"] = "application/json"
        if response_format == "json_schema":
            schema = parse_json_schema(params.get("json_schema", "{}"))
            if isinstance(schema, dict) and schema:
                generation["responseJsonSchema"] = schema

        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": request.question}]}],
        }
        if request.instruction:
            payload["systemInstruction"] = {"parts": [{"text": request.instruction}]}
        if generation:
            payload["generationConfig"] = generation
        if request.tools:
            payload["tools"] = [{
                "functionDeclarations": [
                    {k: v for k, v in tool.items() if k in ("name", "description", "parameters")}
                    for tool in request.tools
                ]
            }]
        return payload

    async def dispatch(self, request: ProviderRequest) -> ProviderResponse:
        url = f"/v1beta/models/{request.model}:generateContent"
        headers = {"x-goog-api-key": request.api_key, "Content-Type": "application/json"}
        client = build_async_client(
            request.base_url or self.base_url, self.timeout, self.max_retries, self._transport
        )
        async with client:
            stopwatch = Stopwatch()
            response = await client.post(url, headers=headers, json=self.build_payload(request))
            elapsed_ms = stopwatch.elapsed_ms()
        data = read_vendor_json("Gemini", response)

        candidates: List[Dict[str, Any]] = data.get("candidates") or []
        if not candidates:
            raise NoContent("Gemini response did not include candidates")
        candidate = candidates[0]
        parts: List[Dict[str, Any]] = (candidate.get("content") or {}).get("parts") or []

        thoughts = [p.get("text", "") for p in parts if p.get("thought")]
        part = next(
            (p for p in parts if not p.get("thought") and ("text" in p or "functionCall" in p)),
            None
        )
        if part is None:
            raise NoContent("No message from Gemini")

        if "functionCall" in part:
            call = part["functionCall"]
            answer = json.dumps({"name": call.get("name"), "arguments": json.dumps(call.get("args", {}))})
        else:
            answer = part.get("text", "")

        usage = data.get("usageMetadata") or {}
        return ProviderResponse(
            answer=answer,
            tokens=TokenCounts(
                prompt=coerce_token_count(usage.get("promptTokenCount")),
                completion=coerce_token_count(usage.get("candidatesTokenCount")),
                total=coerce_token_count(usage.get("totalTokenCount")),
            ),
            response_time_ms=elapsed_ms,
            chain_of_thoughts="\n".join(t for t in thoughts if t) or None,
            status=candidate.get("finishReason"),
        )

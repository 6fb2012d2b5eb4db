"""
OpenAI provider.

Serves both the hosted OpenAI API and any OpenAI-compatible endpoint; the
two only differ by the request's base URL override.
"""

import base64
import binascii
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from openai import AsyncOpenAI

from promptgate.core.token_counter import TokenCounts, coerce_token_count

from .base import NoContent, Provider, ProviderRequest, ProviderResponse, Stopwatch, parse_json_schema

logger = logging.getLogger(__name__)

# Placeholder for local endpoints (Ollama, LM Studio) that need no key
NO_KEY_PLACEHOLDER = "not-needed"

TRANSCRIPTION_MODEL = "whisper-1"
AUDIO_FILENAME = "audio.webm"


def responses_config(request: ProviderRequest) -> Dict[str, Any]:
    """Map sanitized parameters onto Responses API arguments."""
    params = request.parameters
    config: Dict[str, Any] = {}

    if params.get("temperature") is not None:
        config["temperature"] = params["temperature"]
    if params.get("max_tokens") is not None:
        config["max_output_tokens"] = params["max_tokens"]
    if params.get("reasoning_effort") is not None:
        config["reasoning"] = {"effort": params["reasoning_effort"]}

    text: Dict[str, Any] = {}
    response_format = params.get("response_format")
    if response_format == "json_object":
        text["format"] = {"type": "json_object"}
    elif response_format == "json_schema":
        schema = parse_json_schema(params.get("json_schema", "{}"))
        name = "response"
        # Accept the wrapped {"name": ..., "schema": {...}} form as well
        if isinstance(schema, dict) and isinstance(schema.get("schema"), dict):
            name = schema.get("name") or name
            schema = schema["schema"]
        text["format"] = {"type": "json_schema", "name": name, "schema": schema, "strict": False}
    if params.get("verbosity") is not None:
        text["verbosity"] = params["verbosity"]
    if text:
        config["text"] = text

    if request.tools:
        config["tools"] = [
            {"type": "function", **tool, "strict": tool.get("strict", False)}
            for tool in request.tools
        ]

    return config


def answer_from_output(item: Any) -> str:
    """Render the first usable output item as answer text."""
    if item.type == "function_call":
        return json.dumps({"name": item.name, "arguments": item.arguments})
    parts = getattr(item, "content", None) or []
    return "".join(getattr(part, "text", "") or "" for part in parts)


def reasoning_from_output(output: List[Any]) -> Optional[str]:
    summaries = []
    for item in output:
        if item.type != "reasoning":
            continue
        for part in getattr(item, "summary", None) or []:
            text = getattr(part, "text", None)
            if text:
                summaries.append(text)
    return "\n".join(summaries) if summaries else None


class OpenAIProvider(Provider):
    """OpenAI Responses API adapter.

    Timeout and retry policy belong to the SDK transport, not to callers.
    """

    name = "openai"

    def __init__(self, timeout: float = 600.0, max_retries: int = 5) -> None:
        self.timeout = timeout
        self.max_retries = max_retries

    def _client(self, request: ProviderRequest) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=request.api_key or NO_KEY_PLACEHOLDER,
            base_url=request.base_url,
            timeout=self.timeout,
            max_retries=self.max_retries,
        )

    async def dispatch(self, request: ProviderRequest) -> ProviderResponse:
        client = self._client(request)
        try:
            stopwatch = Stopwatch()
            response = await client.responses.create(
                model=request.model,
                input=request.question,
                instructions=request.instruction,
                store=False,
                **responses_config(request)
            )
            elapsed_ms = stopwatch.elapsed_ms()
        finally:
            await client.close()

        output = list(response.output or [])
        message = next(
            (item for item in output if item.type in ("message", "function_call")),
            None
        )
        if message is None:
            raise NoContent("No message from OpenAI")

        usage = response.usage
        return ProviderResponse(
            answer=answer_from_output(message),
            tokens=TokenCounts(
                prompt=coerce_token_count(getattr(usage, "input_tokens", 0)),
                completion=coerce_token_count(getattr(usage, "output_tokens", 0)),
                total=coerce_token_count(getattr(usage, "total_tokens", 0)),
            ),
            response_time_ms=elapsed_ms,
            chain_of_thoughts=reasoning_from_output(output),
            status=getattr(response, "status", None),
        )


def decode_audio(audio: Union[str, bytes]) -> bytes:
    """Raw audio bytes from bytes, a base64 data URL or a binary string.

    Raises:
        ValueError: If the audio is missing, empty or not valid base64
    """
    if not audio:
        raise ValueError("Audio data is required")
    if isinstance(audio, (bytes, bytearray)):
        data = bytes(audio)
    elif isinstance(audio, str):
        if audio.startswith("data:"):
            encoded = audio.split(";base64,")[-1]
            try:
                data = base64.b64decode(encoded, validate=True)
            except binascii.Error as e:
                raise ValueError("Invalid base64 audio data") from e
        else:
            data = audio.encode("latin-1")
    else:
        raise ValueError("Invalid audio data format")
    if not data:
        raise ValueError("Audio file is empty")
    return data


async def transcribe_audio(
    api_key: str,
    audio: Union[str, bytes],
    base_url: Optional[str] = None,
    timeout: float = 600.0,
    max_retries: int = 5
) -> str:
    """Transcribe speech to text with whisper.

    Args:
        api_key: OpenAI key resolved for the caller
        audio: Audio bytes, a ``data:...;base64,`` URL or a binary string
        base_url: Endpoint override

    Returns:
        Plain-text transcription

    Raises:
        ValueError: If the key or audio is missing or malformed
    """
    if not api_key:
        raise ValueError("API key is required")
    data = decode_audio(audio)

    client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=max_retries)
    try:
        transcription = await client.audio.transcriptions.create(
            file=(AUDIO_FILENAME, data),
            model=TRANSCRIPTION_MODEL,
            response_format="text",
        )
    finally:
        await client.close()

    # The SDK returns a bare string for response_format="text"
    return transcription if isinstance(transcription, str) else getattr(transcription, "text", "")


@dataclass
class CompatibleModel:
    """A model advertised by an OpenAI-compatible endpoint."""
    id: str
    name: str
    created: Optional[int] = None
    owned_by: Optional[str] = None


@dataclass
class ListModelsResult:
    models: List[CompatibleModel] = field(default_factory=list)
    error: Optional[str] = None


async def list_compatible_models(api_key: Optional[str], base_url: Optional[str] = None) -> ListModelsResult:
    """List models served by an OpenAI-compatible endpoint.

    Works with OpenAI, Ollama, vLLM, LiteLLM, LM Studio and similar servers.
    Failures are reported in the result instead of raised, since this backs
    an interactive "test connection" flow.

    Args:
        api_key: Endpoint key; blank for servers that need none
        base_url: Endpoint base URL (defaults to the hosted OpenAI API)

    Returns:
        ListModelsResult sorted by model id
    """
    client = AsyncOpenAI(
        api_key=(api_key or "").strip() or NO_KEY_PLACEHOLDER,
        base_url=base_url,
        timeout=15.0,
        max_retries=2,
    )
    try:
        page = await client.models.list()
    except Exception as e:
        logger.error("Error listing models from %s: %s", base_url or "OpenAI", e)
        return ListModelsResult(error=str(e) or "Failed to list models from provider")
    finally:
        await client.close()

    data = getattr(page, "data", None)
    if not isinstance(data, list):
        logger.warning("Unexpected model list format from %s", base_url)
        return ListModelsResult(error="Unexpected response format from provider")

    models = [
        CompatibleModel(
            id=model.id,
            name=model.id,
            created=getattr(model, "created", None),
            owned_by=getattr(model, "owned_by", None),
        )
        for model in data
    ]
    models.sort(key=lambda m: m.id)
    return ListModelsResult(models=models)


async def check_provider_connection(api_key: Optional[str], base_url: Optional[str] = None) -> bool:
    """True if the endpoint lists at least one model."""
    result = await list_compatible_models(api_key, base_url)
    return bool(result.models) and result.error is None

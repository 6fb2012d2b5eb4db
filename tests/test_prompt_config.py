"""
Unit tests for prompt configuration updates and the default model cache.
"""

import asyncio

import pytest

from conftest import FakeCatalog
from promptgate.config.loader import ModelDefinition, ParameterSchema
from promptgate.core.errors import ConfigNotFound
from promptgate.core.orchestrator import StoredPrompt
from promptgate.core.prompt_config import DefaultModelCache, PromptConfigService
from promptgate.core.registry import ModelRegistry
from promptgate.core.sanitizer import ConfigSanitizer
from promptgate.storage.models import LanguageModel

RESPONSE_FORMAT = ParameterSchema(default="text", allowed=("text", "json_object", "json_schema"))


@pytest.fixture
def sanitizer():
    registry = ModelRegistry([
        ModelDefinition(name="big", vendor="OPENAI", parameters={
            "temperature": ParameterSchema(default=0.7, min=0, max=2),
            "max_tokens": ParameterSchema(default=4096, min=1, max=32000),
            "response_format": RESPONSE_FORMAT,
            "json_schema": ParameterSchema(default="{}"),
        }),
        ModelDefinition(name="small", vendor="ANTHROPIC", parameters={
            "temperature": ParameterSchema(default=1.0, min=0, max=1),
            "max_tokens": ParameterSchema(default=1024, min=1, max=8192),
            "response_format": RESPONSE_FORMAT,
            "json_schema": ParameterSchema(default="{}"),
        }),
    ])
    return ConfigSanitizer(registry)


BIG = LanguageModel(id=1, name="big", vendor="OPENAI", prompt_price=1, completion_price=1)
SMALL = LanguageModel(id=2, name="small", vendor="ANTHROPIC", prompt_price=1, completion_price=1)


class CountingLoader:
    def __init__(self, model):
        self.model = model
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.model


class TestDefaultModelCache:
    """Test explicit caching of the default model."""

    def test_loaded_once(self, sanitizer):
        """Test that the loader runs only on first use."""
        loader = CountingLoader(BIG)
        cache = DefaultModelCache(loader, sanitizer)

        first = asyncio.run(cache.get())
        second = asyncio.run(cache.get())

        assert first is second
        assert loader.calls == 1
        assert first.id == 1
        assert first.config == {"temperature": 0.7, "max_tokens": 4096, "response_format": "text"}

    def test_invalidate_reloads(self, sanitizer):
        """Test that invalidation forces a reload."""
        loader = CountingLoader(BIG)
        cache = DefaultModelCache(loader, sanitizer)
        asyncio.run(cache.get())

        loader.model = SMALL
        cache.invalidate()
        assert asyncio.run(cache.get()).name == "small"
        assert loader.calls == 2

    def test_missing_default(self, sanitizer):
        """Test that an empty catalog is reported."""
        cache = DefaultModelCache(FakeCatalog([]).get_default_model, sanitizer)
        with pytest.raises(ConfigNotFound, match="Default language model not found"):
            asyncio.run(cache.get())


class TestPromptConfigService:
    """Test sanitizing at settings-update time."""

    def _service(self, sanitizer, default=BIG):
        return PromptConfigService(sanitizer, DefaultModelCache(CountingLoader(default), sanitizer))

    def test_update_settings_sanitizes(self, sanitizer):
        """Test that saved configs always satisfy the schema."""
        prompt = StoredPrompt(id=1, instruction="x", model_id=1)
        updated = self._service(sanitizer).update_settings(prompt, BIG, {"temperature": 3, "foo": 1})

        assert updated.config == {"temperature": 0.7, "max_tokens": 4096, "response_format": "text"}
        assert prompt.config == {}

    def test_change_model_carries_compatible_values(self, sanitizer):
        """Test that values valid for the new model survive the move."""
        prompt = StoredPrompt(id=1, instruction="x", model_id=1, config={
            "temperature": 0.4, "max_tokens": 20000,
            "response_format": "json_schema", "json_schema": '{"type":"object"}',
        })
        moved = self._service(sanitizer).change_model(prompt, SMALL)

        assert moved.model_id == 2
        assert moved.config == {
            "temperature": 0.4,
            "max_tokens": 1024,
            "response_format": "json_schema",
            "json_schema": '{"type":"object"}',
        }

    def test_reset_config(self, sanitizer):
        """Test that resetting moves the prompt to the default model."""
        prompt = StoredPrompt(id=1, instruction="x", model_id=2, config={"temperature": 0.1})
        reset = asyncio.run(self._service(sanitizer).reset_config(prompt))

        assert reset.model_id == 1
        assert reset.config == {"temperature": 0.7, "max_tokens": 4096, "response_format": "text"}
        assert reset.instruction == "x"

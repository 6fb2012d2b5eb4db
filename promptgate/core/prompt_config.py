"""
Prompt model configuration.

Sanitizes a prompt's model parameters whenever they are saved or the prompt
moves to another model, so that stored configs always satisfy the model's
schema at run time.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Optional

from promptgate.storage.models import LanguageModel

from .errors import ConfigNotFound
from .orchestrator import StoredPrompt
from .sanitizer import JSON_SCHEMA, JSON_SCHEMA_FORMAT, RESPONSE_FORMAT, ConfigSanitizer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DefaultModel:
    """The catalog's default model together with its default config."""
    id: int
    name: str
    vendor: str
    config: Dict[str, Any] = field(default_factory=dict)


class DefaultModelCache:
    """Lazily loaded default model.

    The value is kept until ``invalidate()`` is called; there is no expiry.
    """

    def __init__(
        self,
        loader: Callable[[], Awaitable[Optional[LanguageModel]]],
        sanitizer: ConfigSanitizer
    ):
        self._loader = loader
        self._sanitizer = sanitizer
        self._value: Optional[DefaultModel] = None

    async def get(self) -> DefaultModel:
        """Return the cached default model, loading it on first use.

        Raises:
            ConfigNotFound: If the catalog has no default model
        """
        if self._value is not None:
            return self._value

        model = await self._loader()
        if model is None:
            raise ConfigNotFound("Default language model not found")

        self._value = DefaultModel(
            id=model.id,
            name=model.name,
            vendor=model.vendor,
            config=self._sanitizer.default_values(model.name, model.vendor, model.parameters_config),
        )
        logger.debug("Default model cached: %s/%s", model.vendor, model.name)
        return self._value

    def invalidate(self) -> None:
        self._value = None


class PromptConfigService:
    """Keeps prompt configs sanitized against their model."""

    def __init__(self, sanitizer: ConfigSanitizer, default_model_cache: DefaultModelCache):
        self.sanitizer = sanitizer
        self.default_model_cache = default_model_cache

    def update_settings(self, prompt: StoredPrompt, model: LanguageModel, raw_config: Any) -> StoredPrompt:
        """Replace a prompt's config with the sanitized version of ``raw_config``.

        Args:
            prompt: Prompt being edited
            model: The prompt's current model
            raw_config: Parameters as submitted by the caller

        Returns:
            Updated prompt
        """
        config = self.sanitizer.sanitize(model.name, model.vendor, raw_config, model.parameters_config)
        return replace(prompt, config=config)

    def change_model(self, prompt: StoredPrompt, new_model: LanguageModel) -> StoredPrompt:
        """Move a prompt to another model, carrying over compatible values.

        Starts from the new model's defaults, overlays every old value whose
        key the new model also declares, keeps an explicit JSON schema, then
        sanitizes the result against the new model.
        """
        defaults = self.sanitizer.default_values(
            new_model.name, new_model.vendor, new_model.parameters_config
        )
        old_config = prompt.config or {}

        candidate = dict(defaults)
        for key, value in old_config.items():
            if key in defaults:
                candidate[key] = value

        if old_config.get(RESPONSE_FORMAT) == JSON_SCHEMA_FORMAT and old_config.get(JSON_SCHEMA):
            candidate[RESPONSE_FORMAT] = JSON_SCHEMA_FORMAT
            candidate[JSON_SCHEMA] = old_config[JSON_SCHEMA]

        config = self.sanitizer.sanitize(
            new_model.name, new_model.vendor, candidate, new_model.parameters_config
        )
        return replace(prompt, model_id=new_model.id, config=config)

    async def default_model(self) -> DefaultModel:
        return await self.default_model_cache.get()

    async def reset_config(self, prompt: StoredPrompt) -> StoredPrompt:
        """Reset a prompt to the default model and its default config."""
        default = await self.default_model_cache.get()
        return replace(prompt, model_id=default.id, config=dict(default.config))

"""
Model configuration sanitizing.

Coerces arbitrary caller-supplied parameters into a complete configuration
that satisfies a model's declared schema. Invalid values are replaced by
schema defaults rather than rejected: callers always get a usable config.

Coupling rule: ``json_schema`` is present if and only if ``response_format``
is ``"json_schema"``, and then it is always a non-empty string.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from promptgate.config.loader import (
    AiVendor,
    ModelDefinition,
    ParameterSchema,
    parse_custom_parameters,
    vendor_tag,
)

from .registry import ModelRegistry

logger = logging.getLogger(__name__)

TOOLS = "tools"
RESPONSE_FORMAT = "response_format"
JSON_SCHEMA = "json_schema"

JSON_OBJECT_FORMAT = "json_object"
JSON_SCHEMA_FORMAT = "json_schema"
JSON_EMITTING_FORMATS = (JSON_OBJECT_FORMAT, JSON_SCHEMA_FORMAT)
EMPTY_JSON_SCHEMA = "{}"


@dataclass
class ReindexResult:
    """Outcome of re-sanitizing a batch of stored configurations."""
    configs: List[Dict[str, Any]] = field(default_factory=list)
    updated: int = 0
    skipped: int = 0


def _default(schema: ParameterSchema) -> Any:
    # Defaults may be lists; never hand out the schema's own instance.
    return copy.deepcopy(schema.default)


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and value.strip() != ""


def _resolved_response_format(
    sanitized: Mapping[str, Any],
    raw: Mapping[str, Any],
    parameters: Mapping[str, ParameterSchema]
) -> Any:
    """Response format in effect: sanitized so far, else raw input, else schema default."""
    if sanitized.get(RESPONSE_FORMAT) is not None:
        return sanitized[RESPONSE_FORMAT]
    if raw.get(RESPONSE_FORMAT) is not None:
        return raw[RESPONSE_FORMAT]
    rf_schema = parameters.get(RESPONSE_FORMAT)
    return rf_schema.default if rf_schema is not None else None


def _apply_response_format(
    sanitized: Dict[str, Any],
    schema: ParameterSchema,
    value: Any,
    raw: Mapping[str, Any]
) -> None:
    if schema.allowed is not None and value not in schema.allowed:
        value = _default(schema)

    sanitized[RESPONSE_FORMAT] = value
    if value == JSON_SCHEMA_FORMAT:
        # The schema text is used verbatim; its contents are not validated here.
        supplied = raw.get(JSON_SCHEMA)
        sanitized[JSON_SCHEMA] = supplied if _is_non_empty_string(supplied) else EMPTY_JSON_SCHEMA
    else:
        sanitized.pop(JSON_SCHEMA, None)


def sanitize_parameters(
    parameters: Mapping[str, ParameterSchema],
    raw: Mapping[str, Any]
) -> Dict[str, Any]:
    """Sanitize raw parameters against a parameter schema.

    Only keys declared by the schema are kept. A ``None`` value counts as
    absent.

    Args:
        parameters: Parameter schemas in declaration order
        raw: Caller-supplied parameter values

    Returns:
        Complete, schema-conforming parameter map
    """
    sanitized: Dict[str, Any] = {}

    for name, schema in parameters.items():
        value = raw.get(name)

        if value is None:
            if name == JSON_SCHEMA:
                rf = _resolved_response_format(sanitized, raw, parameters)
                if rf in JSON_EMITTING_FORMATS and name not in sanitized:
                    sanitized[name] = _default(schema)
            else:
                sanitized[name] = _default(schema)
            continue

        if name == TOOLS:
            sanitized[name] = value if isinstance(value, list) else _default(schema)
            continue

        if name == RESPONSE_FORMAT:
            _apply_response_format(sanitized, schema, value, raw)
            continue

        # Resolved together with response_format
        if name == JSON_SCHEMA:
            continue

        if schema.allowed is not None:
            sanitized[name] = value if value in schema.allowed else _default(schema)
            continue

        if schema.has_range:
            sanitized[name] = value if schema.in_range(value) else _default(schema)
            continue

        sanitized[name] = value

    # Completion pass for parameters not set above
    for name, schema in parameters.items():
        if name in sanitized:
            continue
        if name == JSON_SCHEMA and sanitized.get(RESPONSE_FORMAT) not in JSON_EMITTING_FORMATS:
            continue
        sanitized[name] = _default(schema)

    # Final consistency between response_format and json_schema
    if sanitized.get(RESPONSE_FORMAT) == JSON_SCHEMA_FORMAT:
        if not _is_non_empty_string(sanitized.get(JSON_SCHEMA)):
            sanitized[JSON_SCHEMA] = EMPTY_JSON_SCHEMA
    else:
        sanitized.pop(JSON_SCHEMA, None)

    return sanitized


class ConfigSanitizer:
    """Produces sanitized configurations for models in a registry."""

    def __init__(self, registry: ModelRegistry):
        self.registry = registry

    def resolve_definition(
        self,
        model_name: str,
        vendor: Any,
        custom_schema: Optional[Mapping[str, Any]] = None
    ) -> Optional[ModelDefinition]:
        """Find the schema that applies to a model.

        A custom-endpoint model uses its dynamically supplied schema when
        one is stored; every other model uses the registry entry.
        """
        tag = vendor_tag(vendor)
        if tag == AiVendor.CUSTOM_OPENAI_COMPATIBLE.value and custom_schema:
            parameters = parse_custom_parameters(custom_schema)
            if parameters:
                return ModelDefinition(name=model_name, vendor=tag, parameters=parameters)
        return self.registry.get(model_name, tag)

    def sanitize(
        self,
        model_name: str,
        vendor: Any,
        raw_config: Any,
        custom_schema: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """Validate and sanitize a model configuration.

        Never raises. When no schema exists for the model (a custom
        endpoint without a stored schema, or an unknown model), there are
        no constraints to apply and the input is returned unchanged.

        Args:
            model_name: Model name
            vendor: Vendor tag
            raw_config: Caller-supplied parameters; non-mappings count as empty
            custom_schema: Stored parameter schema of a custom model

        Returns:
            Sanitized configuration
        """
        raw = dict(raw_config) if isinstance(raw_config, Mapping) else {}

        definition = self.resolve_definition(model_name, vendor, custom_schema)
        if definition is None:
            if vendor_tag(vendor) != AiVendor.CUSTOM_OPENAI_COMPATIBLE.value:
                logger.warning(
                    "No schema for model %s/%s; config passed through", vendor_tag(vendor), model_name
                )
            return raw

        return sanitize_parameters(definition.parameters, raw)

    def default_values(
        self,
        model_name: str,
        vendor: Any,
        custom_schema: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """Default configuration of a model (empty when it has no schema)."""
        definition = self.resolve_definition(model_name, vendor, custom_schema)
        if definition is None:
            return {}
        return sanitize_parameters(definition.parameters, {})

    def reindex_configs(
        self,
        model_name: str,
        vendor: Any,
        configs: Iterable[Any],
        custom_schema: Optional[Mapping[str, Any]] = None
    ) -> ReindexResult:
        """Re-sanitize stored configurations after a model's schema changed.

        Without a schema every config is reset to the model defaults.
        Configs that already conform are counted as skipped.
        """
        has_schema = bool(custom_schema)
        defaults = self.default_values(model_name, vendor, custom_schema)

        result = ReindexResult()
        for config in configs:
            current = dict(config) if isinstance(config, Mapping) else {}
            if has_schema:
                next_config = self.sanitize(model_name, vendor, current, custom_schema)
            else:
                next_config = copy.deepcopy(defaults)

            result.configs.append(next_config)
            if next_config == current:
                result.skipped += 1
            else:
                result.updated += 1
        return result

    @staticmethod
    def custom_model_params_template() -> Dict[str, Dict[str, Any]]:
        """Tunable parameters offered when configuring a custom model."""
        return {
            "temperature": {"enabled": False, "min": 0, "max": 2, "default": 0.7},
            "max_tokens": {"enabled": False, "min": 1, "max": 128000, "default": 4096},
            "response_format": {
                "enabled": False,
                "allowed": ["text", "json_object", "json_schema"],
                "default": "text",
            },
            "tools": {"enabled": False, "default": []},
        }

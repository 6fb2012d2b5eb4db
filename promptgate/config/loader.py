"""
Model definition loading.

Reads per-vendor model parameter schemas from YAML or JSON documents.
A document that fails validation is skipped with a warning; one bad file
never prevents the rest of the registry from loading.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

logger = logging.getLogger(__name__)

CONFIG_SUFFIXES = (".json", ".yaml", ".yml")

BUNDLED_MODELS_DIR = Path(__file__).resolve().parent / "models"


class AiVendor(str, Enum):
    """Vendor tags known to the bundled provider registry."""
    OPENAI = "OPENAI"
    ANTHROPIC = "ANTHROPIC"
    GOOGLE = "GOOGLE"
    CUSTOM_OPENAI_COMPATIBLE = "CUSTOM_OPENAI_COMPATIBLE"


def vendor_tag(vendor: Any) -> str:
    """Normalize a vendor enum member or string into its tag."""
    if isinstance(vendor, Enum):
        return str(vendor.value)
    return str(vendor)


def _is_number(value: Any) -> bool:
    # NaN and infinities compare false against both bounds
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value)


@dataclass(frozen=True)
class ParameterSchema:
    """Constraints and default for one model parameter."""
    default: Any
    min: Optional[float] = None
    max: Optional[float] = None
    allowed: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        """Validate that the default satisfies its own constraints."""
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("min must be <= max")
        if self.allowed is not None and self.default not in self.allowed:
            raise ValueError(f"default {self.default!r} is not in allowed values")
        if self.has_range and _is_number(self.default) and not self.in_range(self.default):
            raise ValueError(f"default {self.default!r} is outside [{self.min}, {self.max}]")

    @property
    def has_range(self) -> bool:
        return self.min is not None or self.max is not None

    def in_range(self, value: Any) -> bool:
        """True if value is numeric and within the declared bounds."""
        if not _is_number(value):
            return False
        if self.min is not None and value < self.min:
            return False
        if self.max is not None and value > self.max:
            return False
        return True


@dataclass(frozen=True)
class ModelDefinition:
    """Immutable parameter schema of one model from one vendor."""
    name: str
    vendor: str
    parameters: Dict[str, ParameterSchema] = field(default_factory=dict)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.name, self.vendor)


def parse_parameter_schema(data: Mapping[str, Any], path: str) -> ParameterSchema:
    """Parse and validate a single parameter schema.

    Args:
        data: Raw parameter entry
        path: Path for error messages

    Returns:
        Validated ParameterSchema

    Raises:
        ValueError: If the entry is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"Parameter '{path}' must be a dictionary")

    allowed_keys = {'min', 'max', 'default', 'allowed'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    if 'default' not in data:
        raise ValueError(f"Missing required 'default' in {path}")

    for bound in ('min', 'max'):
        if bound in data and not _is_number(data[bound]):
            raise ValueError(f"'{bound}' in {path} must be a number")

    allowed = data.get('allowed')
    if allowed is not None:
        if not isinstance(allowed, list) or not all(isinstance(v, str) for v in allowed):
            raise ValueError(f"'allowed' in {path} must be a list of strings")
        allowed = tuple(allowed)

    try:
        return ParameterSchema(
            default=data['default'],
            min=data.get('min'),
            max=data.get('max'),
            allowed=allowed
        )
    except ValueError as e:
        raise ValueError(f"Invalid parameter {path}: {e}")


def parse_models_document(raw: Any, source: str) -> List[ModelDefinition]:
    """Parse and validate one models document.

    Args:
        raw: Parsed document content
        source: Document name for error messages

    Returns:
        Model definitions declared by the document

    Raises:
        ValueError: If the document is invalid
    """
    if not raw:
        raise ValueError(f"Configuration document {source} is empty")
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration document {source} must be a dictionary")

    unknown_keys = set(raw.keys()) - {'models'}
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    models_data = raw.get('models')
    if not isinstance(models_data, list):
        raise ValueError("'models' must be a list")

    models = []
    for index, entry in enumerate(models_data):
        path = f"models[{index}]"
        if not isinstance(entry, dict):
            raise ValueError(f"{path} must be a dictionary")

        unknown_keys = set(entry.keys()) - {'name', 'vendor', 'parameters'}
        if unknown_keys:
            raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

        name = entry.get('name')
        vendor = entry.get('vendor')
        if not isinstance(name, str) or not name.strip():
            raise ValueError(f"'name' in {path} must be a non-empty string")
        if not isinstance(vendor, str) or not vendor.strip():
            raise ValueError(f"'vendor' in {path} must be a non-empty string")

        params_data = entry.get('parameters', {})
        if not isinstance(params_data, dict):
            raise ValueError(f"'parameters' in {path} must be a dictionary")

        parameters = {
            param_name: parse_parameter_schema(param_data, f"{path}.parameters.{param_name}")
            for param_name, param_data in params_data.items()
        }
        models.append(ModelDefinition(name=name, vendor=vendor, parameters=parameters))

    return models


def load_models_file(path: Path) -> List[ModelDefinition]:
    """Load model definitions from a single YAML or JSON file.

    JSON is read through the YAML parser, which accepts it as a subset.

    Raises:
        OSError: If the file can't be read
        yaml.YAMLError: If the content is not valid YAML/JSON
        ValueError: If the document is invalid
    """
    with open(path, 'r', encoding='utf-8') as f:
        raw = yaml.safe_load(f)
    return parse_models_document(raw, path.name)


def load_model_definitions(directory: Optional[Path] = None) -> List[ModelDefinition]:
    """Load every models document found in a directory.

    Invalid documents are skipped with a warning. A missing directory
    yields an empty list.

    Args:
        directory: Directory to scan (defaults to the bundled definitions)

    Returns:
        Model definitions in file-name order
    """
    config_dir = Path(directory) if directory is not None else BUNDLED_MODELS_DIR
    if not config_dir.is_dir():
        logger.error("Model config directory not found: %s", config_dir)
        return []

    definitions: List[ModelDefinition] = []
    for path in sorted(config_dir.iterdir()):
        if path.suffix.lower() not in CONFIG_SUFFIXES:
            continue
        try:
            definitions.extend(load_models_file(path))
        except (OSError, yaml.YAMLError, ValueError) as e:
            logger.warning("Skipping invalid model config %s: %s", path.name, e)

    return definitions


def parse_custom_parameters(raw: Any) -> Dict[str, ParameterSchema]:
    """Leniently parse a parameter schema stored for a custom model.

    Entries that are disabled, lack a default or fail validation are
    dropped instead of failing the whole schema.
    """
    if not isinstance(raw, dict):
        return {}

    parameters = {}
    for param_name, data in raw.items():
        if not isinstance(data, dict) or data.get('enabled') is False:
            continue
        entry = {k: v for k, v in data.items() if k in ('min', 'max', 'default', 'allowed')}
        try:
            parameters[param_name] = parse_parameter_schema(entry, param_name)
        except ValueError as e:
            logger.warning("Ignoring custom parameter %s: %s", param_name, e)
    return parameters

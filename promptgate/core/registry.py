"""
Model registry.

Read-mostly table of model definitions keyed by (name, vendor). Populated
once at startup and safe for concurrent reads afterwards.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from promptgate.config.loader import ModelDefinition, load_model_definitions, vendor_tag

logger = logging.getLogger(__name__)


class ModelRegistry:
    """Lookup of static model definitions."""

    def __init__(self, definitions: Iterable[ModelDefinition] = ()):
        self._models: Dict[Tuple[str, str], ModelDefinition] = {}
        for definition in definitions:
            if definition.key in self._models:
                logger.warning(
                    "Duplicate model definition %s/%s ignored", definition.vendor, definition.name
                )
                continue
            self._models[definition.key] = definition

    @classmethod
    def from_directory(cls, directory: Optional[Path] = None) -> "ModelRegistry":
        """Build a registry from a directory of models documents."""
        registry = cls(load_model_definitions(directory))
        logger.info("Loaded %d model definitions", len(registry))
        return registry

    def get(self, name: str, vendor) -> Optional[ModelDefinition]:
        """Exact lookup by (name, vendor)."""
        return self._models.get((name, vendor_tag(vendor)))

    def models(self, vendor=None) -> List[ModelDefinition]:
        """All definitions, optionally filtered by vendor, in load order."""
        if vendor is None:
            return list(self._models.values())
        tag = vendor_tag(vendor)
        return [m for m in self._models.values() if m.vendor == tag]

    def __len__(self) -> int:
        return len(self._models)

    def __contains__(self, key) -> bool:
        name, vendor = key
        return (name, vendor_tag(vendor)) in self._models

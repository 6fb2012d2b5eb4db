"""
Runtime wiring.

Builds the registry, providers, SQLite collaborators, orchestrator and
system prompt runner from settings. The model registry is loaded once here and shared read-only.
"""

from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Optional

from promptgate.config.settings import Settings
from promptgate.core.orchestrator import RequestOrchestrator, SystemContext
from promptgate.core.prompt_config import DefaultModelCache, PromptConfigService
from promptgate.core.quota import QuotaGate
from promptgate.core.registry import ModelRegistry
from promptgate.core.sanitizer import ConfigSanitizer
from promptgate.core.system_prompts import SystemPromptRunner
from promptgate.providers import ProviderRegistry, build_default_registry
from promptgate.providers.openai_client import transcribe_audio
from promptgate.storage.repository import (
    SqliteBillingStore,
    SqliteModelCatalog,
    SqliteUsageRecorder,
    initialize_schema,
)


@dataclass
class Runtime:
    settings: Settings
    registry: ModelRegistry
    sanitizer: ConfigSanitizer
    providers: ProviderRegistry
    billing: SqliteBillingStore
    catalog: SqliteModelCatalog
    recorder: SqliteUsageRecorder
    orchestrator: RequestOrchestrator
    prompt_config: PromptConfigService
    system_prompts: SystemPromptRunner


def build_runtime(settings: Settings, providers: Optional[ProviderRegistry] = None) -> Runtime:
    """Assemble all collaborators for one process.

    Args:
        settings: Runtime settings
        providers: Provider registry override (defaults to the built-in adapters)

    Returns:
        Wired runtime
    """
    initialize_schema(settings.db_path)

    models_dir = Path(settings.models_dir) if settings.models_dir else None
    registry = ModelRegistry.from_directory(models_dir)
    sanitizer = ConfigSanitizer(registry)

    if providers is None:
        providers = build_default_registry(
            timeout=settings.provider_timeout_seconds,
            max_retries=settings.provider_max_retries,
        )

    billing = SqliteBillingStore(settings.db_path, platform_keys=settings.platform_keys)
    catalog = SqliteModelCatalog(settings.db_path)
    recorder = SqliteUsageRecorder(settings.db_path)

    system_context = None
    if settings.has_system_context:
        system_context = SystemContext(
            org_id=settings.system_org_id,
            project_id=settings.system_project_id,
        )

    orchestrator = RequestOrchestrator(
        catalog=catalog,
        quota_gate=QuotaGate(billing),
        providers=providers,
        recorder=recorder,
        system_context=system_context,
    )
    prompt_config = PromptConfigService(
        sanitizer, DefaultModelCache(catalog.get_default_model, sanitizer)
    )
    # Prompts are registered by the host application at startup
    system_prompts = SystemPromptRunner(
        orchestrator,
        {},
        transcriber=partial(
            transcribe_audio,
            timeout=settings.provider_timeout_seconds,
            max_retries=settings.provider_max_retries,
        ),
    )

    return Runtime(
        settings=settings,
        registry=registry,
        sanitizer=sanitizer,
        providers=providers,
        billing=billing,
        catalog=catalog,
        recorder=recorder,
        orchestrator=orchestrator,
        prompt_config=prompt_config,
        system_prompts=system_prompts,
    )

"""
CLI interface for promptgate.

Inspect model schemas, sanitize configs, price token counts, manage the
local SQLite catalog, run prompts end to end and transcribe audio.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from promptgate.config.settings import Settings, get_settings
from promptgate.core.errors import ConfigNotFound, PromptGateError
from promptgate.core.orchestrator import Memory, RunDescriptor, StoredPrompt
from promptgate.core.pricing import ModelPricing, compute_cost
from promptgate.core.registry import ModelRegistry
from promptgate.core.sanitizer import ConfigSanitizer
from promptgate.core.system_prompts import SystemPromptName
from promptgate.core.token_counter import TokenUsage
from promptgate.logging_config import setup_logging
from promptgate.runtime import build_runtime
from promptgate.storage.models import LogType
from promptgate.storage.repository import fetch_recent_usage_records, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _settings(db: Optional[str]) -> Settings:
    settings = get_settings()
    if db:
        settings = settings.model_copy(update={"db_path": db})
    return settings


def _sanitizer(settings: Settings) -> ConfigSanitizer:
    models_dir = Path(settings.models_dir) if settings.models_dir else None
    return ConfigSanitizer(ModelRegistry.from_directory(models_dir))


def _parse_json_option(value: Optional[str], option: str):
    if value is None:
        return {}
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        console.print(f"[red]Invalid JSON for {option}:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)


def _print_json(data) -> None:
    console.print_json(json.dumps(data))


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """promptgate CLI."""
    setup_logging(get_settings().log_level)
    if ctx.invoked_subcommand is None:
        console.print("promptgate - Use --help to see available commands")


@app.command()
def init(
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database path"),
):
    """Initialize the promptgate database."""
    settings = _settings(db)
    try:
        initialize_schema(settings.db_path)
        console.print(f"[green]✓[/] Database initialized at {settings.db_path}")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def models(
    vendor: Optional[str] = typer.Option(None, "--vendor", "-v", help="Only list models of this vendor"),
):
    """List models with a known parameter schema."""
    sanitizer = _sanitizer(get_settings())
    definitions = sanitizer.registry.models(vendor)
    if not definitions:
        console.print("[yellow]No model definitions found[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Models")
    table.add_column("Vendor")
    table.add_column("Model")
    table.add_column("Parameters")
    for definition in definitions:
        table.add_row(definition.vendor, definition.name, ", ".join(definition.parameters))
    console.print(table)


@app.command()
def defaults(
    model: str = typer.Argument(..., help="Model name"),
    vendor: str = typer.Option(..., "--vendor", "-v", help="Vendor tag"),
):
    """Show the default configuration of a model."""
    sanitizer = _sanitizer(get_settings())
    if sanitizer.resolve_definition(model, vendor) is None:
        console.print(f"[red]Error:[/] No schema for {vendor}/{model}")
        sys.exit(EXIT_CODE_FAIL)
    _print_json(sanitizer.default_values(model, vendor))


@app.command()
def sanitize(
    model: str = typer.Argument(..., help="Model name"),
    vendor: str = typer.Option(..., "--vendor", "-v", help="Vendor tag"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Raw config as JSON"),
    schema: Optional[str] = typer.Option(None, "--schema", help="Custom parameter schema as JSON"),
):
    """Sanitize a raw configuration against a model's schema."""
    sanitizer = _sanitizer(get_settings())
    raw = _parse_json_option(config, "--config")
    custom_schema = _parse_json_option(schema, "--schema") if schema else None
    _print_json(sanitizer.sanitize(model, vendor, raw, custom_schema))


@app.command()
def cost(
    prompt_tokens: int = typer.Option(..., "--prompt-tokens", help="Input token count"),
    completion_tokens: int = typer.Option(..., "--completion-tokens", help="Output token count"),
    prompt_price: float = typer.Option(..., "--prompt-price", help="Price per million input tokens"),
    completion_price: float = typer.Option(..., "--completion-price", help="Price per million output tokens"),
):
    """Compute the cost of a call from token counts and per-million prices."""
    try:
        breakdown = compute_cost(
            TokenUsage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
            ModelPricing(prompt_per_million=prompt_price, completion_per_million=completion_price),
        )
    except ValueError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"Prompt cost: ${breakdown.prompt:.6f}")
    console.print(f"Completion cost: ${breakdown.completion:.6f}")
    console.print(f"[bold]Total cost:[/bold] ${breakdown.total:.6f}")


@app.command("set-quota")
def set_quota(
    org_id: int = typer.Option(..., "--org-id", help="Organization id"),
    balance: float = typer.Option(..., "--balance", help="New quota balance"),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database path"),
):
    """Set an organization's quota balance."""
    runtime = build_runtime(_settings(db))
    runtime.billing.set_quota(org_id, balance)
    console.print(f"[green]✓[/] Quota for org {org_id} set to {balance}")


@app.command("add-key")
def add_key(
    org_id: int = typer.Option(..., "--org-id", help="Organization id"),
    vendor: str = typer.Option(..., "--vendor", "-v", help="Vendor tag"),
    key: str = typer.Option(..., "--key", help="API key"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Endpoint for custom providers"),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database path"),
):
    """Store an organization's own vendor key."""
    runtime = build_runtime(_settings(db))
    key_id = runtime.billing.add_api_key(org_id, vendor, key, base_url)
    console.print(f"[green]✓[/] Added key {key_id} for {vendor}")


@app.command("add-model")
def add_model(
    name: str = typer.Argument(..., help="Model name"),
    vendor: str = typer.Option(..., "--vendor", "-v", help="Vendor tag"),
    prompt_price: float = typer.Option(0.0, "--prompt-price", help="Price per million input tokens"),
    completion_price: float = typer.Option(0.0, "--completion-price", help="Price per million output tokens"),
    api_key_id: Optional[int] = typer.Option(None, "--api-key-id", help="Bind the model to a stored key"),
    schema: Optional[str] = typer.Option(None, "--schema", help="Custom parameter schema as JSON"),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database path"),
):
    """Add a model to the catalog."""
    parameters_config = _parse_json_option(schema, "--schema") if schema else None
    runtime = build_runtime(_settings(db))
    model_id = runtime.catalog.add_model(
        name, vendor, prompt_price, completion_price, api_key_id, parameters_config
    )
    console.print(f"[green]✓[/] Added model {model_id}: {vendor}/{name}")


@app.command()
def usage(
    org_id: Optional[int] = typer.Option(None, "--org-id", help="Only show this organization"),
    errors: bool = typer.Option(False, "--errors", help="Only show failed runs"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum number of records"),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database path"),
):
    """Show recent usage records."""
    settings = _settings(db)
    initialize_schema(settings.db_path)
    records = fetch_recent_usage_records(
        org_id=org_id,
        log_type=LogType.AI_ERROR.value if errors else None,
        limit=limit,
        db_path=settings.db_path,
    )
    if not records:
        console.print("[yellow]No usage records found[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Usage")
    table.add_column("Time")
    table.add_column("Org")
    table.add_column("Model")
    table.add_column("Status")
    table.add_column("Tokens", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("ms", justify="right")
    for record in records:
        table.add_row(
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            str(record.org_id),
            f"{record.vendor}/{record.model}",
            record.log_level if not record.description else f"{record.log_level}: {record.description}",
            str(record.tokens_sum),
            f"${record.cost:.6f}",
            str(record.response_ms),
        )
    console.print(table)


@app.command()
def run(
    model_id: int = typer.Option(..., "--model-id", help="Catalog model id"),
    question: str = typer.Option(..., "--question", "-q", help="User input"),
    org_id: int = typer.Option(..., "--org-id", help="Calling organization"),
    instruction: str = typer.Option("", "--instruction", "-i", help="System instruction"),
    project_id: Optional[int] = typer.Option(None, "--project-id", help="Calling project"),
    prompt_id: int = typer.Option(0, "--prompt-id", help="Prompt id recorded with the usage"),
    config: Optional[str] = typer.Option(None, "--config", "-c", help="Model config as JSON"),
    memory: Optional[str] = typer.Option(None, "--memory", help="Memory value appended to the instruction"),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database path"),
):
    """Run a prompt against a catalog model."""
    runtime = build_runtime(_settings(db))
    raw_config = _parse_json_option(config, "--config")

    async def _run():
        model = await runtime.catalog.get_model(model_id)
        if model is None:
            raise ConfigNotFound(f"Model with id {model_id} not found")
        prompt = runtime.prompt_config.update_settings(
            StoredPrompt(id=prompt_id, instruction=instruction, model_id=model_id),
            model,
            raw_config,
        )
        return await runtime.orchestrator.run(RunDescriptor(
            prompt=prompt,
            question=question,
            org_id=org_id,
            project_id=project_id,
            memory=Memory(key="cli", value=memory) if memory else None,
        ))

    try:
        result = asyncio.run(_run())
    except PromptGateError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    except Exception as e:
        console.print(f"[red]Run failed:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(result.answer)
    if result.chain_of_thoughts:
        console.print(f"\n[dim]{result.chain_of_thoughts}[/]")
    console.print(
        f"\n[bold]Tokens:[/bold] {result.tokens.prompt} in / {result.tokens.completion} out"
        f"  [bold]Cost:[/bold] ${result.cost.total:.6f}"
        f"  [bold]Time:[/bold] {result.response_time_ms} ms"
    )


@app.command()
def transcribe(
    audio_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Audio file to transcribe"),
    org_id: int = typer.Option(..., "--org-id", help="Calling organization"),
    prompt_id: int = typer.Option(0, "--prompt-id", help="Speech-to-text prompt id recorded with the usage"),
    user_id: Optional[int] = typer.Option(None, "--user-id", help="Calling user"),
    user_email: Optional[str] = typer.Option(None, "--user-email", help="Calling user's email"),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database path"),
):
    """Transcribe speech to text as a system-level call."""
    runtime = build_runtime(_settings(db))
    runtime.system_prompts.register(
        SystemPromptName.SPEECH_TO_TEXT,
        StoredPrompt(id=prompt_id, instruction="", model_id=0),
    )

    try:
        text = asyncio.run(runtime.system_prompts.transcribe(
            audio_file.read_bytes(), org_id=org_id, user_id=user_id, user_email=user_email
        ))
    except PromptGateError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    except Exception as e:
        console.print(f"[red]Transcription failed:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(text)


if __name__ == "__main__":
    app()

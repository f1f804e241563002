"""structcall CLI - typer application entry point."""

from __future__ import annotations

import asyncio
import atexit
import json
import re
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from structcall.observability import close_file_logging, configure_logging, get_logger

if TYPE_CHECKING:
    from structcall.config import StructcallConfig
    from structcall.providers import CompletionService

# Load environment variables from .env file
load_dotenv()

app = typer.Typer(
    name="structcall",
    help="structcall: JSON Schema builder and tool-call resolution for chat completions.",
    no_args_is_help=True,
)
console = Console()
log = get_logger(__name__)

# Global CLI state
_config_path: Path | None = None


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log_file: Annotated[
        Path | None,
        typer.Option("--log", help="Also write every log event to this JSONL file."),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Config file (default: ./structcall.yaml if present).",
            envvar="STRUCTCALL_CONFIG",
        ),
    ] = None,
) -> None:
    """structcall: JSON Schema builder and tool-call resolution for chat completions."""
    global _config_path
    _config_path = config

    configure_logging(verbosity=verbose, log_file=log_file)
    if log_file is not None:
        atexit.register(close_file_logging)


def _load_config() -> StructcallConfig:
    from structcall.config import ConfigError, load_config

    try:
        return load_config(_config_path)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e


def _load_document(path: Path) -> Any:
    """Read a JSON or YAML document."""
    if not path.exists():
        console.print(f"[red]Error:[/red] File not found: {path}")
        raise typer.Exit(1)

    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() == ".json":
            return json.loads(text)

        from ruamel.yaml import YAML

        return YAML(typ="safe").load(text)
    except Exception as e:
        console.print(f"[red]Error:[/red] Cannot parse {path}: {escape(str(e))}")
        raise typer.Exit(1) from e


def _schema_name(path: Path) -> str:
    name = re.sub(r"[^a-zA-Z0-9_-]", "_", path.stem)[:64]
    return name or "response"


def _is_default_endpoint(config: StructcallConfig) -> bool:
    from structcall.providers.openai_compat import DEFAULT_BASE_URL

    return config.base_url.rstrip("/") == DEFAULT_BASE_URL


@app.command()
def version() -> None:
    """Show version information."""
    from structcall import __version__

    console.print(f"structcall v{__version__}")


@app.command("check-schema")
def check_schema(
    path: Annotated[Path, typer.Argument(help="JSON Schema file (.json or .yaml).")],
) -> None:
    """Check a JSON Schema file against structured-output limits."""
    import jsonschema

    from structcall.schema import SchemaError, from_json_schema, schema_stats, validate

    config = _load_config()
    limits = config.schema_limits
    document = _load_document(path)

    if not isinstance(document, dict):
        console.print("[red]✗[/red] Schema must be a JSON object")
        raise typer.Exit(1)

    try:
        jsonschema.Draft202012Validator.check_schema(document)
    except jsonschema.SchemaError as e:
        console.print(f"[red]✗[/red] Not a valid JSON Schema: {escape(e.message)}")
        raise typer.Exit(1) from e

    try:
        node = validate(
            from_json_schema(document),
            max_depth=limits.max_depth,
            max_objects=limits.max_objects,
        )
    except SchemaError as e:
        console.print(f"[red]✗[/red] {e.kind.name}: {escape(str(e))}")
        raise typer.Exit(1) from e

    stats = schema_stats(node)
    table = Table(title=str(path), show_header=True)
    table.add_column("Measure")
    table.add_column("Value", justify="right")
    table.add_column("Limit", justify="right")
    table.add_row("Object nesting depth", str(stats.max_depth), str(limits.max_depth))
    table.add_row("Object count", str(stats.object_count), str(limits.max_objects))
    table.add_row("Node count", str(stats.node_count), "")
    console.print(table)
    console.print("[green]✓[/green] Schema is within limits")


@app.command()
def derive(
    path: Annotated[Path, typer.Argument(help="Record description (.yaml or .json).")],
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Print the strict-mode wire form."),
    ] = False,
) -> None:
    """Derive a JSON Schema from a record description."""
    from pydantic import ValidationError

    from structcall.schema import (
        RecordSpec,
        SchemaError,
        generate_from_type,
        to_json_schema,
        to_strict_json_schema,
        validate,
    )

    config = _load_config()
    document = _load_document(path)

    try:
        spec = RecordSpec.model_validate(document)
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid record description: {escape(str(e))}")
        raise typer.Exit(1) from e

    try:
        node = validate(
            generate_from_type(spec),
            max_depth=config.schema_limits.max_depth,
            max_objects=config.schema_limits.max_objects,
        )
    except SchemaError as e:
        console.print(f"[red]✗[/red] {e.kind.name}: {escape(str(e))}")
        raise typer.Exit(1) from e

    wire = to_strict_json_schema(node, spec.name) if strict else to_json_schema(node)
    console.print_json(json.dumps(wire))


def _build_service(config: StructcallConfig) -> CompletionService:
    """Create the completion service described by *config*."""
    from structcall.providers import OpenAICompatibleService, RetryingService

    base_url = None if _is_default_endpoint(config) else config.base_url
    service = OpenAICompatibleService(
        default_model=config.model,
        base_url=base_url,
        timeout=config.timeout,
        api_key_env=config.api_key_env,
    )
    return RetryingService(service, config.retry.to_policy())


@app.command()
def ask(
    prompt: Annotated[str, typer.Argument(help="User prompt.")],
    schema: Annotated[
        Path | None,
        typer.Option("--schema", "-s", help="JSON Schema file for a structured answer."),
    ] = None,
    system: Annotated[
        str | None,
        typer.Option("--system", help="System prompt."),
    ] = None,
    record: Annotated[
        Path | None,
        typer.Option("--record", help="Append each completion call to this JSONL file."),
    ] = None,
) -> None:
    """Send one prompt and print the resolved answer."""
    from structcall.conversation import ConversationRunner, ConversationState
    from structcall.observability import CompletionLogger
    from structcall.providers import LoggingService, ServiceError
    from structcall.schema import (
        ResponseFormat,
        SchemaError,
        StructuredOutputError,
        from_json_schema,
        parse_structured_output,
    )

    config = _load_config()

    response_format = None
    if schema is not None:
        document = _load_document(schema)
        if not isinstance(document, dict):
            console.print("[red]Error:[/red] Schema must be a JSON object")
            raise typer.Exit(1)
        try:
            response_format = ResponseFormat.json_schema(
                _schema_name(schema), from_json_schema(document)
            )
        except (SchemaError, ValueError) as e:
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(1) from e

    try:
        service = _build_service(config)
    except ServiceError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    if record is not None:
        service = LoggingService(service, CompletionLogger(record))

    runner = ConversationRunner(
        service,
        max_turns=config.max_turns,
        parallel_tool_calls=config.parallel_tool_calls,
        max_concurrency=config.max_concurrency,
    )
    state = ConversationState.start(prompt, system=system)

    async def _run() -> Any:
        try:
            return await runner.resolve(state, response_format=response_format)
        finally:
            if hasattr(service, "close"):
                await service.close()

    resolution = asyncio.run(_run())
    log.debug("ask_complete", status=str(resolution.status), tokens=state.tokens_used)

    if not resolution.ok:
        console.print(f"[red]✗[/red] {escape(resolution.describe())}")
        raise typer.Exit(1)

    content = resolution.content or ""
    if response_format is None:
        console.print(content)
        return

    try:
        data = parse_structured_output(content, response_format)
    except StructuredOutputError as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        for error in e.errors:
            console.print(f"  [red]•[/red] {escape(error)}")
        raise typer.Exit(1) from e
    console.print_json(json.dumps(data))


@app.command()
def doctor() -> None:
    """Check configuration and service connectivity."""
    console.print("[bold]structcall Doctor[/bold]")
    console.print()

    config = _load_config()

    all_ok = _check_configuration(config)
    all_ok &= asyncio.run(_check_service(config))

    console.print()
    if all_ok:
        console.print("[green]All checks passed![/green]")
    else:
        console.print("[yellow]Some checks failed or were skipped.[/yellow]")
        raise typer.Exit(1)


def _check_configuration(config: StructcallConfig) -> bool:
    """Check configuration values and the API key variable."""
    import os

    console.print("[bold]Configuration[/bold]")
    console.print(f"  [green]✓[/green] base_url: {config.base_url}")
    console.print(f"  [green]✓[/green] model: {config.model}")
    console.print(f"  [green]✓[/green] max_turns: {config.max_turns}")

    value = os.getenv(config.api_key_env)
    if value:
        display = f"{value[:7]}...{value[-3:]}" if len(value) > 10 else "(set)"
        console.print(f"  [green]✓[/green] {config.api_key_env}: {display}")
        console.print()
        return True

    console.print(f"  [dim]○[/dim] {config.api_key_env}: not configured")
    console.print()
    # Custom endpoints may not need a key
    return not _is_default_endpoint(config)


async def _check_service(config: StructcallConfig) -> bool:
    """Check that the completion endpoint answers."""
    import os

    import httpx

    console.print("[bold]Service Connectivity[/bold]")

    headers = {}
    if api_key := os.getenv(config.api_key_env):
        headers["Authorization"] = f"Bearer {api_key}"

    url = f"{config.base_url.rstrip('/')}/models"
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(url, headers=headers)
    except httpx.TimeoutException:
        console.print("  [red]✗[/red] Connection timeout")
        return False
    except httpx.RequestError as e:
        console.print(f"  [red]✗[/red] Request error - {escape(str(e))}")
        return False

    if response.status_code == 200:
        console.print(f"  [green]✓[/green] Connected to {config.base_url}")
        return True
    if response.status_code == 401:
        console.print("  [red]✗[/red] Invalid API key")
        return False
    console.print(f"  [red]✗[/red] HTTP {response.status_code}")
    return False


if __name__ == "__main__":
    app()

"""CLI entry point for docproc."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional

import click

from docproc import __version__
from docproc.config.settings import ProcessorSettings, load_config
from docproc.processor import OnWriteProcessor, ProcessingStats, ProcessorConfig
from docproc.store import InMemoryStore
from docproc.utils.logging import configure_logging, get_logger
from docproc.utils.result import ExitCode


class Context:
    """CLI context for sharing state between commands."""

    def __init__(self, settings: ProcessorSettings, config_path: Optional[Path]) -> None:
        self.settings = settings
        self.config_path = config_path
        self.logger = get_logger("cli")


pass_context = click.make_pass_decorator(Context)


def output_json(data: dict) -> None:
    """Output JSON to stdout."""
    click.echo(json.dumps(data, indent=2, default=str))


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=False, dir_okay=False, path_type=Path),
    default=None,
    help="Path to a YAML settings file",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warn", "error"], case_sensitive=False),
    default=None,
    help="Logging level (overrides the settings file)",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "text"], case_sensitive=False),
    default=None,
    help="Log format (overrides the settings file)",
)
@click.version_option(version=__version__)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Optional[Path],
    log_level: Optional[str],
    log_format: Optional[str],
) -> None:
    """
    docproc - write-triggered document processor.

    Developer tooling for exercising the processor against an in-memory
    document store.
    """
    result = load_config(config_path)
    if result.is_err():
        click.echo(f"Error: {result.unwrap_err()}", err=True)
        ctx.exit(ExitCode.CONFIG_ERROR)
    settings = result.unwrap()

    if log_level:
        settings.logging.level = log_level
    if log_format:
        settings.logging.format = log_format

    configure_logging(level=settings.logging.level, format_type=settings.logging.format)

    ctx.obj = Context(settings=settings, config_path=config_path)


@cli.command("show-config")
@pass_context
def show_config(ctx: Context) -> None:
    """Print the effective settings."""
    output_json(ctx.settings.to_dict())


async def _simulate(
    settings: ProcessorSettings,
    input_value: str,
    order_value: Optional[str],
    fail_message: Optional[str],
    collection: str,
) -> tuple[list[dict[str, Any]], ProcessingStats, InMemoryStore]:
    """Run one record through the processor and collect every observed write."""
    store = InMemoryStore()
    observed: list[dict[str, Any]] = []
    store.on_snapshot(lambda path, data: observed.append({"path": path, "data": data}))

    async def transform(value: Any) -> Any:
        if fail_message is not None:
            raise RuntimeError(fail_message)
        return {settings.output_field: value}

    stats = ProcessingStats()
    config = ProcessorConfig.from_settings(
        settings,
        process_fn=transform,
        pre_process_hook=stats.pre_process,
        post_process_hook=stats.post_process,
    )
    store.on_write(OnWriteProcessor(config))

    data: dict[str, Any] = {settings.input_field: input_value}
    if order_value is not None:
        data[settings.order_field] = order_value

    await store.add(collection, data)
    await store.drain()
    return observed, stats, store


@cli.command()
@click.option("--input", "input_value", required=True, help="Value written to the input field")
@click.option("--order-value", default=None, help="Explicit ordering field value")
@click.option("--fail", "fail_message", default=None, help="Make the transform raise this message")
@click.option("--collection", default="records", show_default=True, help="Collection name")
@pass_context
def simulate(
    ctx: Context,
    input_value: str,
    order_value: Optional[str],
    fail_message: Optional[str],
    collection: str,
) -> None:
    """Create one record in an in-memory store and print every write."""
    observed, stats, store = asyncio.run(
        _simulate(ctx.settings, input_value, order_value, fail_message, collection)
    )

    output_json({
        "writes": observed,
        "stats": stats.to_dict(),
        "trigger_errors": [
            {"path": path, "error": str(error)} for path, error in store.trigger_errors
        ],
    })

    if store.trigger_errors:
        ctx.logger.error("simulation_failed", errors=len(store.trigger_errors))
        sys.exit(ExitCode.GENERAL_ERROR)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()

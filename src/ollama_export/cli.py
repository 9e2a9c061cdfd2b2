"""CLI entry points for ollama-export."""

from __future__ import annotations

import sys
from collections.abc import Callable
from typing import Any

import click

from .core import ModelExporter
from .errors import OllamaExportError, SupervisorError
from .logging_config import LOG_FORMATS, configure_logging
from .models import ExportConfig, ModelReference, SupervisorConfig
from .supervisor import ProcessSupervisor

_PACKAGE_NAME = "ollama-export"


def _logging_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Add the --verbose and --log-format options shared by both commands."""
    func = click.option(
        "--log-format",
        type=click.Choice(LOG_FORMATS),
        default="console",
        show_default=True,
        help="Log line format written to stderr.",
    )(func)
    func = click.option(
        "--verbose", "-v", is_flag=True, help="Enable debug logging."
    )(func)
    return func


class _ExportCommand(click.Command):
    """Export command whose usage errors exit with status 1."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        try:
            rest = super().parse_args(ctx, args)
            if ctx.params.get("name") == "help":
                raise click.UsageError("invalid argument: help", ctx=ctx)
        except click.UsageError as exc:
            exc.exit_code = 1
            raise
        return rest


@click.command(
    "ollama-export",
    cls=_ExportCommand,
    epilog=(
        "\b\nExamples:\n"
        "  ollama-export llama3\n"
        "  ollama-export llama3 -o /path/to/files"
    ),
)
@click.argument("name")
@click.option(
    "--output",
    "-o",
    "output_dir",
    type=click.Path(),
    default=None,
    help="Directory to write the exported files to. Defaults to ./<model>-<tag>.",
)
@click.option(
    "--models-dir",
    type=click.Path(file_okay=False),
    envvar="OLLAMA_MODELS",
    default=None,
    help="Model cache root. Defaults to ~/.ollama/models.",
)
@click.option(
    "--verify",
    is_flag=True,
    help="Check each blob's SHA-256 against its layer digest.",
)
@_logging_options
@click.version_option(package_name=_PACKAGE_NAME)
def export_main(
    name: str,
    output_dir: str | None,
    models_dir: str | None,
    verify: bool,
    verbose: bool,
    log_format: str,
) -> None:
    """Export a locally cached model to a Modelfile and model.bin."""
    configure_logging("DEBUG" if verbose else "WARNING", log_format)

    overrides = {"models_root": models_dir} if models_dir else {}
    config = ExportConfig(verify_digests=verify, **overrides)

    try:
        reference = ModelReference.parse(name)
        if output_dir is None:
            output_dir = f"{reference.model}-{reference.tag}"
        click.echo(f'Exporting model "{reference.display_name}" to "{output_dir}"...\n')
        result = ModelExporter(config).export(name, output_dir)
    except OllamaExportError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    click.echo(f"  Source : {reference.source}")
    click.echo(f"  Layers : {result.layer_count}")
    click.echo(f"  Files  : {', '.join(result.files)}")
    click.echo(
        f'Model "{reference.display_name}" has been exported to "{result.output_dir}"!'
    )


@click.command("ollama-serve")
@_logging_options
@click.version_option(package_name=_PACKAGE_NAME)
def serve_main(verbose: bool, log_format: str) -> None:
    """Run the ollama server next to this executable until it exits or is signalled."""
    configure_logging("DEBUG" if verbose else "INFO", log_format)

    supervisor = ProcessSupervisor(SupervisorConfig.default())
    try:
        supervisor.run()
    except SupervisorError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    export_main()

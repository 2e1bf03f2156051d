"""CLI entry point for gateway-openapi."""

import logging
from pathlib import Path

import click

from gateway_openapi.config import build_config
from gateway_openapi.errors import GatewaySpecError, SpecValidationError
from gateway_openapi.generator.assembler import assemble
from gateway_openapi.generator.converter import convert_to_swagger2
from gateway_openapi.generator.enhancer import enhance_for_google_cloud
from gateway_openapi.generator.validator import validate_document
from gateway_openapi.parser.base import ServiceDescriptor
from gateway_openapi.workspace.discovery import (
    DEFAULT_EXPOSE_TAG,
    DEFAULT_GRAPH_TIMEOUT,
    discover_services,
)
from gateway_openapi.writer import write_document


class ClickHandler(logging.Handler):
    """Route library log records to stderr through click."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            click.echo(self.format(record), err=True)
        except Exception:
            self.handleError(record)


def _configure_logging(verbose: bool) -> None:
    logger = logging.getLogger("gateway_openapi")
    logger.setLevel(logging.INFO if verbose else logging.WARNING)
    if not any(isinstance(h, ClickHandler) for h in logger.handlers):
        handler = ClickHandler()
        handler.setFormatter(logging.Formatter("  %(levelname)s: %(message)s"))
        logger.addHandler(handler)


def _echo_services(services: list[ServiceDescriptor]) -> None:
    for service in services:
        click.echo(f"  {service.project.name}: {service.prefix} -> {service.backend_url} ({service.env_var})")
        libs = ", ".join(lib.name for lib in service.libraries) or "none"
        click.echo(f"    libraries: {libs}")


def discovery_options(func):
    """Options shared by every command that reads the workspace graph."""
    options = [
        click.argument("workspace", default=".", type=click.Path(exists=True, file_okay=False, path_type=Path)),
        click.option("--graph-file", envvar="NX_GRAPH_FILE", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Pre-generated `nx graph --file` JSON; skips running the graph command."),
        click.option("--graph-command", default=None, help="Command that writes the project graph JSON to {file}."),
        click.option("--graph-timeout", default=DEFAULT_GRAPH_TIMEOUT, type=float, show_default=True, help="Seconds to wait for the graph command."),
        click.option("--expose-tag", envvar="GATEWAY_EXPOSE_TAG", default=DEFAULT_EXPOSE_TAG, show_default=True, help="Project tag marking services exposed through the gateway."),
        click.option("-v", "--verbose", is_flag=True, help="Show per-service analysis details."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
def main():
    """Gateway OpenAPI: build an API Gateway spec from annotated service source."""
    pass


@main.command()
@discovery_options
@click.option("-o", "--output", envvar="OPENAPI_OUTPUT_FILE", type=click.Path(path_type=Path), help="Output file (.yaml/.yml or .json).")
@click.option("--title", envvar="GATEWAY_TITLE", help="Gateway display title.")
@click.option("--description", envvar="GATEWAY_DESCRIPTION", help="Gateway description.")
@click.option("--version", "version", envvar="GATEWAY_VERSION", help="Gateway version (MAJOR.MINOR.PATCH[-label]).")
@click.option("--protocol", envvar="BACKEND_PROTOCOL", help="Backend protocol: http or https.")
@click.option("--project-id", envvar="GOOGLE_CLOUD_PROJECT", help="Google Cloud project id.")
@click.option("--rate-limit", envvar="GATEWAY_RATE_LIMIT", help="Requests per minute per project.")
@click.option("--firebase-auth", envvar="GATEWAY_FIREBASE_AUTH", is_flag=True, help="Also declare a Firebase Authentication scheme.")
def generate(
    workspace: Path,
    graph_file: Path | None,
    graph_command: str | None,
    graph_timeout: float,
    expose_tag: str,
    verbose: bool,
    output: Path | None,
    title: str | None,
    description: str | None,
    version: str | None,
    protocol: str | None,
    project_id: str | None,
    rate_limit: str | None,
    firebase_auth: bool,
):
    """Generate the gateway specification for every exposable service."""
    _configure_logging(verbose)
    try:
        config = build_config(
            output_file=output,
            title=title,
            description=description,
            version=version,
            protocol=protocol,
            project_id=project_id,
            rate_limit=rate_limit,
            firebase_auth=firebase_auth,
        )
        click.echo(f"Generating {config.title} v{config.version} ({config.protocol}, project {config.project_id})")

        click.echo("Discovering services...")
        services = discover_services(
            workspace,
            expose_tag=expose_tag,
            graph_file=graph_file,
            graph_command=graph_command,
            timeout=graph_timeout,
        )
        _echo_services(services)

        click.echo("Analysing route groups...")
        combined = assemble(services, workspace, config.title, config.description, config.version)

        click.echo("Converting OpenAPI 3 -> Swagger 2.0...")
        result = convert_to_swagger2(combined)

        click.echo("Adding API Gateway configuration...")
        spec = enhance_for_google_cloud(result.spec, services, config)

        errors = validate_document(spec)
        if errors:
            details = "\n".join(f"  - {loc}: {msg}" for loc, msg in errors.items())
            raise SpecValidationError(f"Generated document is inconsistent:\n{details}")

        path = write_document(spec, config.output_file)
    except GatewaySpecError as e:
        raise click.ClickException(str(e)) from e

    if result.warnings:
        click.echo("Conversion warnings:")
        for warning in result.warnings:
            click.echo(f"  - {warning}")

    click.echo(f"Specification written to {path}")
    click.echo(f"  paths: {len(spec['paths'])}, definitions: {len(spec['definitions'])}")


@main.command()
@discovery_options
def services(
    workspace: Path,
    graph_file: Path | None,
    graph_command: str | None,
    graph_timeout: float,
    expose_tag: str,
    verbose: bool,
):
    """List exposable services, their prefixes and backend URLs."""
    _configure_logging(verbose)
    try:
        found = discover_services(
            workspace,
            expose_tag=expose_tag,
            graph_file=graph_file,
            graph_command=graph_command,
            timeout=graph_timeout,
        )
    except GatewaySpecError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Found {len(found)} services:")
    _echo_services(found)

"""Command line interface for the connector framework."""

import sys
import json
import logging
from typing import Dict, Optional, Tuple

import click

from .config import ConnectorSettings, setup_logging, load_environment
from ..engine.connector_engine import ConnectorEngine, create_engine_from_env
from ..exceptions import ConduitException


def _parse_pairs(pairs: Tuple[str, ...], option: str) -> Dict[str, str]:
    """Turn repeated KEY=VALUE options into a dictionary."""
    result = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"expected KEY=VALUE, got '{pair}'", param_hint=option)
        key, value = pair.split("=", 1)
        result[key] = value
    return result


def _build_engine(ctx: click.Context) -> ConnectorEngine:
    settings = ConnectorSettings.from_env()
    if ctx.obj.get("services_file"):
        settings = settings.model_copy(update={"services_file": ctx.obj["services_file"]})
    return create_engine_from_env(settings)


def _fail(e: ConduitException) -> None:
    click.echo(f"{e.kind}: {e.message}", err=True)
    sys.exit(1)


@click.group()
@click.option('--log-level', default='INFO', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              help='Set the logging level')
@click.option('--env-file', type=click.Path(exists=True), help='Path to .env file')
@click.option('--services-file', type=click.Path(exists=True), help='JSON file with extra service descriptors')
@click.pass_context
def cli(ctx: click.Context, log_level: str, env_file: Optional[str], services_file: Optional[str]) -> None:
    """Descriptor-driven connector tool."""
    setup_logging(log_level)
    load_environment(env_file)
    ctx.ensure_object(dict)
    ctx.obj["services_file"] = services_file


@cli.command()
@click.option('--output', type=click.Choice(['table', 'json']), default='table', help='Output format')
@click.pass_context
def services(ctx: click.Context, output: str) -> None:
    """List registered services."""
    try:
        engine = _build_engine(ctx)
    except ConduitException as e:
        _fail(e)
        return

    registered = engine.list_services()
    if output == 'json':
        click.echo(json.dumps([service.to_public_dict() for service in registered], indent=2))
        return

    if not registered:
        click.echo("No services registered.")
        return

    click.echo(f"{'ID':<20} {'Auth':<14} {'Transform':<12} {'Endpoints':<10} {'Base URL'}")
    click.echo("-" * 90)
    for service in registered:
        click.echo(f"{service.id:<20} {service.auth_provider.value:<14} {service.data_transformer.value:<12} "
                   f"{len(service.endpoints):<10} {service.base_url}")


@cli.command()
@click.argument('service_id')
@click.pass_context
def service(ctx: click.Context, service_id: str) -> None:
    """Show a service descriptor."""
    try:
        engine = _build_engine(ctx)
        click.echo(json.dumps(engine.get_service(service_id).to_public_dict(), indent=2))
    except ConduitException as e:
        _fail(e)


@cli.command()
@click.argument('service_id')
@click.argument('endpoint_id')
@click.option('--auth', 'auth_pairs', multiple=True, help='Auth setting KEY=VALUE (${NAME} resolves a secret)')
@click.option('--path', 'path_pairs', multiple=True, help='Path parameter KEY=VALUE')
@click.option('--query', 'query_pairs', multiple=True, help='Query parameter KEY=VALUE')
@click.option('--data', help='JSON request body')
@click.pass_context
def call(ctx: click.Context, service_id: str, endpoint_id: str, auth_pairs: Tuple[str, ...],
         path_pairs: Tuple[str, ...], query_pairs: Tuple[str, ...], data: Optional[str]) -> None:
    """Connect, call one endpoint, print the normalized result, disconnect."""
    auth_config = _parse_pairs(auth_pairs, '--auth')
    path_params = _parse_pairs(path_pairs, '--path')
    query_params = _parse_pairs(query_pairs, '--query')
    try:
        body = json.loads(data) if data else None
    except ValueError as e:
        raise click.BadParameter(f"invalid JSON: {e}", param_hint='--data')

    connection_id = None
    engine = None
    try:
        engine = _build_engine(ctx)
        connection_id = engine.connect(service_id, auth_config).id
        result = engine.invoke(connection_id, endpoint_id, path_params, query_params, body)
        click.echo(result.model_dump_json(by_alias=True, indent=2))
    except ConduitException as e:
        _fail(e)
    finally:
        if engine is not None and connection_id is not None:
            engine.disconnect(connection_id)


@cli.command()
@click.option('--host', default='0.0.0.0', help='Bind address')
@click.option('--port', default=8000, type=int, help='Port')
def serve(host: str, port: int) -> None:
    """Run the HTTP API."""
    import uvicorn
    logging.info(f"Starting API on {host}:{port}")
    uvicorn.run("conduit.api.app:app", host=host, port=port)


if __name__ == '__main__':
    cli()

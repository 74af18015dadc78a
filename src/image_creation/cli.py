"""CLI entry point for the image-creation service."""

from __future__ import annotations

import json

import click


def _overrides(log_backend: str | None, cache_backend: str | None) -> dict:
    overrides: dict = {}
    if log_backend:
        overrides["event_log"] = {"backend": log_backend}
    if cache_backend:
        overrides["cache"] = {"backend": cache_backend}
    return overrides


_config_option = click.option(
    "--config", default=None, help="TOML config file path",
)
_log_backend_option = click.option(
    "--log-backend",
    type=click.Choice(["redis", "memory"]),
    default=None,
    help="Event log backend override",
)
_cache_backend_option = click.option(
    "--cache-backend",
    type=click.Choice(["redis", "memory"]),
    default=None,
    help="Cache backend override",
)


@click.group()
def main() -> None:
    """Event-sourced image generation and classification."""


@main.command()
@_config_option
@_log_backend_option
@_cache_backend_option
@click.option("--host", default=None, help="Bind address override")
@click.option("--port", default=None, type=int, help="Port override")
def serve(
    config: str | None,
    log_backend: str | None,
    cache_backend: str | None,
    host: str | None,
    port: int | None,
) -> None:
    """Run the HTTP API together with the projection dispatcher."""
    import asyncio

    from .main import serve as run_serve

    overrides = _overrides(log_backend, cache_backend)
    api: dict = {}
    if host:
        api["host"] = host
    if port:
        api["port"] = port
    if api:
        overrides["api"] = api

    asyncio.run(run_serve(config_path=config, overrides=overrides))


@main.command()
@_config_option
@_cache_backend_option
def project(config: str | None, cache_backend: str | None) -> None:
    """Run only the projection dispatcher, tailing until interrupted."""
    import asyncio

    from .main import project as run_project

    asyncio.run(run_project(
        config_path=config, overrides=_overrides(None, cache_backend),
    ))


@main.command()
@_config_option
@_cache_backend_option
def replay(config: str | None, cache_backend: str | None) -> None:
    """Rebuild the read models from the whole event log, then exit."""
    import asyncio

    from .main import replay as run_replay

    stats = asyncio.run(run_replay(
        config_path=config, overrides=_overrides(None, cache_backend),
    ))
    click.echo(json.dumps(stats, indent=2))
    if stats["projection_errors"] or stats["decode_errors"]:
        raise SystemExit(1)


@main.command("init-db")
@_config_option
def init_db(config: str | None) -> None:
    """Create the read-model tables (development; production uses alembic)."""
    import asyncio

    from .main import init_db as run_init_db

    asyncio.run(run_init_db(config_path=config))
    click.echo("Tables created.")


if __name__ == "__main__":
    main()

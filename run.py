"""Entry-point for the Kosakata service."""

from __future__ import annotations

import inspect
import logging
from typing import Optional

import typer
import uvicorn

from kosakata.bootstrap import BootstrapError, initialize_app
from kosakata.config import AppConfig
from kosakata.logging_utils import configure_logging
from kosakata.services.accounts import AdminService
from kosakata.services.auth import ROLE_ADMIN, ROLES, TokenService
from kosakata.services.errors import ServiceError
from kosakata.services.storage import ContentRepository
from kosakata.services.uploads import VIDEO_MAX_BYTES
from kosakata.web import create_app


LOGGER = logging.getLogger("kosakata.cli")


cli = typer.Typer(add_completion=False, help="Kosakata management commands")


DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def _prepare_logging(config: AppConfig) -> None:
    configure_logging(config)


def _normalize_root_path(root_path: Optional[str]) -> str:
    if root_path is None:
        return ""
    normalized = root_path.strip()
    if not normalized:
        return ""
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    return normalized.rstrip("/")


def get_request_size_limit(config: AppConfig) -> int:
    """Return the largest request body the server accepts, ``0`` for no limit."""

    if config.max_upload_bytes <= 0:
        return 0
    # Room for a culture entry: one image plus one video.
    return max(config.max_upload_bytes, VIDEO_MAX_BYTES) * 2


def _initialize() -> AppConfig:
    try:
        return initialize_app()
    except BootstrapError as error:
        typer.echo(f"Initialization failed: {error}", err=True)
        raise typer.Exit(code=1) from error


@cli.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Launch the web server when no explicit command is provided."""

    if ctx.invoked_subcommand is None:
        ctx.invoke(serve, host=DEFAULT_HOST, port=DEFAULT_PORT, root_path=None)


@cli.command()
def serve(
    host: str = typer.Option(DEFAULT_HOST, help="Host interface for the web server"),
    port: int = typer.Option(DEFAULT_PORT, help="Port for the web server"),
    root_path: Optional[str] = typer.Option(
        None,
        help="Prefix the application expects when mounted behind a proxy",
        envvar="KOSAKATA_ROOT_PATH",
    ),
) -> None:
    """Run the HTTP API."""

    app_config = _initialize()
    _prepare_logging(app_config)

    repository = ContentRepository(app_config)
    normalized_root = _normalize_root_path(root_path)
    app = create_app(repository, config=app_config, root_path=normalized_root)

    config_kwargs = {}
    request_limit = get_request_size_limit(app_config)
    if request_limit > 0:
        config_signature = inspect.signature(uvicorn.Config.__init__)
        if "limit_max_request_size" in config_signature.parameters:
            config_kwargs["limit_max_request_size"] = request_limit
        else:
            LOGGER.warning(
                "Ignoring max request size limit; uvicorn.Config does not support "
                "'limit_max_request_size'.",
            )

    server_config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_config=None,
        root_path=normalized_root,
        **config_kwargs,
    )
    server = uvicorn.Server(server_config)
    app.state.server = server
    LOGGER.info("Serving Kosakata on http://%s:%s%s", host, port, normalized_root or "/")
    server.run()


@cli.command()
def init() -> None:
    """Create directories, the database schema and the seed records."""

    config = _initialize()
    typer.echo(f"Database ready at: {config.database_file}")
    typer.echo(f"Uploads stored in: {config.uploads_root}")


@cli.command("create-admin")
def create_admin(
    name: str = typer.Option(..., help="Display name of the admin"),
    email: str = typer.Option(..., help="Login email"),
    password: str = typer.Option(
        ..., prompt=True, hide_input=True, confirmation_prompt=True, help="Login password"
    ),
    role: str = typer.Option(ROLE_ADMIN, help=f"Account role ({' or '.join(ROLES)})"),
) -> None:
    """Create an admin account from the command line."""

    config = _initialize()
    _prepare_logging(config)

    service = AdminService(ContentRepository(config), TokenService(config.secret_key))
    try:
        admin = service.create_admin(name, email, password, role)
    except ServiceError as error:
        typer.echo(f"Could not create admin: {error}", err=True)
        raise typer.Exit(code=1) from error
    typer.echo(f"Created {admin.role} '{admin.name}' <{admin.email}> (id={admin.id})")


if __name__ == "__main__":
    cli()

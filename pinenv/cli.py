"""Typer-based CLI for pinenv."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

import typer

from . import __version__, render
from .auth import AuthContext, TokenStore
from .backends import Backend, get_backend
from .catalog import Catalog
from .config import Settings, configure_logging, load_settings
from .exceptions import LockSpecError, NotFoundError, PinenvError, ProvisionError
from .installer import Installer
from .interactive import choose_environment, confirm_relogin, is_interactive
from .lockspec import LockSpec
from .provision import Provisioner

app = typer.Typer(help="Provision pinned environments from remote repositories", add_completion=False)
auth_app = typer.Typer(help="Authenticate with the hosting backend")
app.add_typer(auth_app, name="auth")

NO_SUBCOMMAND_EXIT = 2


@dataclass
class AppState:
    settings: Settings
    auth: AuthContext
    verbose: bool = False

    @property
    def catalog(self) -> Catalog:
        return Catalog(self.settings.catalog_root)

    def backend(self) -> Backend:
        return get_backend(self.settings, self.auth, presenter=render.show_device_code)

    def provisioner(self) -> Provisioner:
        return Provisioner(
            settings=self.settings,
            catalog=self.catalog,
            installer=Installer(self.settings.installer),
            backend=self.backend(),
        )


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"pinenv {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging."),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the pinenv version and exit.",
    ),
) -> None:
    _ = version  # handled via callback
    configure_logging(verbose)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(NO_SUBCOMMAND_EXIT)
    try:
        settings = load_settings()
        auth_context = AuthContext.load(TokenStore(settings.token_path))
    except PinenvError as exc:
        _fail(str(exc))
    ctx.obj = AppState(settings=settings, auth=auth_context, verbose=verbose)


@app.command(help="Fetch an environment and link its lockspec into the current directory")
def get(
    ctx: typer.Context,
    env: Optional[str] = typer.Argument(
        None,
        help="URL or <org>/<name> of the environment. If omitted, pick from local environments.",
    ),
) -> None:
    state = _require_state(ctx)
    with _handle_errors():
        env = env or choose_environment(state.catalog.names(), state.catalog.root)
        render.info(f"Fetching {env}...")
        result = state.provisioner().get(env, Path.cwd())
    origin = "Cloned" if result.cloned else "Reused local copy of"
    render.success(f"{origin} {result.reference.name}; lockspec linked into {result.lockspec.root}")


@app.command(help="Clone an environment repository to a path and install it there")
def clone(
    ctx: typer.Context,
    env: str = typer.Argument(..., metavar="NAME", help="URL or <org>/<name> of the lockspec to grab."),
    path: Optional[Path] = typer.Option(
        None,
        "--path",
        "-p",
        help="Path where the lockspec should be cloned (defaults to ./<name>).",
        file_okay=False,
        dir_okay=True,
    ),
) -> None:
    state = _require_state(ctx)
    with _handle_errors():
        result = state.provisioner().clone(env, Path.cwd(), path.expanduser() if path else None)
    render.success(f"Cloned {result.reference.web_url(state.settings.default_org)} into {result.lockspec.root}")


@app.command(help="Create a new environment backed by a private repository")
def init(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the environment."),
    org: Optional[str] = typer.Option(None, "--org", help="Organization owning the repository."),
) -> None:
    state = _require_state(ctx)
    with _handle_errors():
        result = state.provisioner().init(name, org)
    render.success(f"Created environment {name} at {result.lockspec.root}")
    render.info(f"Remote: {result.reference.web_url(state.settings.default_org)}")


@app.command(help="Push a local environment (and optionally a new tag) to its remote")
def push(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name of the environment."),
    tag: Optional[str] = typer.Option(None, "--tag", "-t", help="Tag to create and push."),
) -> None:
    state = _require_state(ctx)
    with _handle_errors():
        lockspec = state.provisioner().push(name, tag)
    suffix = f" with tag {tag}" if tag else ""
    render.success(f"Pushed {lockspec.root}{suffix}")


@app.command(name="list", help="List environments in the local catalog")
def list_environments(ctx: typer.Context) -> None:
    state = _require_state(ctx)
    catalog = state.catalog
    names = catalog.names()
    if not names:
        typer.echo("No environments found.")
        return
    render.show_environments([_describe(catalog, name) for name in names])


@auth_app.callback(invoke_without_command=True)
def auth(ctx: typer.Context) -> None:
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(NO_SUBCOMMAND_EXIT)


@auth_app.command(help="Log in to the configured backend")
def login(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Log in again without asking when a token is cached."),
) -> None:
    state = _require_state(ctx)
    if state.auth.is_authenticated and not yes and is_interactive():
        if not confirm_relogin():
            render.info("Keeping the existing token.")
            return
    with _handle_errors():
        state.backend().login()
    render.success("Successfully authenticated.")


@auth_app.command(help="Remove the cached token")
def logout(ctx: typer.Context) -> None:
    state = _require_state(ctx)
    with _handle_errors():
        cleared = state.auth.store.clear()
    if cleared:
        render.success("Logged out.")
    else:
        render.info("No cached token found.")


@auth_app.command(help="Show whether a token is cached")
def status(ctx: typer.Context) -> None:
    state = _require_state(ctx)
    if state.auth.is_authenticated:
        render.success(f"Authenticated (token cached at {state.auth.store.path})")
        return
    render.warning("Not authenticated. Run `pinenv auth login`.")
    raise typer.Exit(1)


def _require_state(ctx: typer.Context) -> AppState:
    state = ctx.find_object(AppState)
    if state is None:  # pragma: no cover
        raise typer.Exit(1)
    return state


def _describe(catalog: Catalog, name: str) -> tuple[str, str, str]:
    path = catalog.path_for(name)
    try:
        lockspec = LockSpec.from_directory(path)
        stamped = lockspec.metadata_name() or "-"
    except NotFoundError:
        stamped = "(invalid)"
    except LockSpecError:
        stamped = "(unreadable)"
    return name, stamped, str(path)


@contextmanager
def _handle_errors() -> Iterator[None]:
    """Turn library errors into a red message and exit status 1."""

    try:
        yield
    except PinenvError as exc:
        render.error(str(exc))
        if isinstance(exc, ProvisionError):
            render.show_rollback_failures(exc.rollback_failures)
        raise typer.Exit(1) from exc


def _fail(message: str, code: int = 1) -> None:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code)


if __name__ == "__main__":
    app()

"""CLI commands for arvault."""

import asyncio
import base64
import re
import secrets
import sys
from datetime import timedelta
from pathlib import Path
from uuid import UUID

import click


@click.group()
@click.version_option(package_name="arvault")
def cli():
    """arvault - asset upload and access-control service."""
    pass


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8080, type=int, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
@click.option("--workers", default=1, type=int, help="Number of worker processes")
@click.option(
    "--log-level",
    default="info",
    type=click.Choice(["debug", "info", "warning", "error"]),
    help="Logging level",
)
def serve(host, port, reload, workers, log_level):
    """Run the arvault server."""
    import signal

    from hypercorn.asyncio import serve as hypercorn_serve
    from hypercorn.config import Config

    config = Config()
    config.application_path = "arvault.asgi:app"
    config.bind = [f"{host}:{port}"]
    config.workers = 1 if reload else workers
    config.loglevel = log_level.upper()
    config.include_server_header = False

    if reload:
        config.use_reloader = True
        from hypercorn.run import run
        run(config)
        return

    from arvault.asgi import app

    shutdown_event = asyncio.Event()

    loop = asyncio.new_event_loop()
    loop.add_signal_handler(signal.SIGINT, shutdown_event.set)
    loop.add_signal_handler(signal.SIGTERM, shutdown_event.set)
    try:
        loop.run_until_complete(
            hypercorn_serve(app, config, shutdown_trigger=shutdown_event.wait)
        )
    finally:
        loop.close()


def _set_env_value(content: str, name: str, value: str) -> str:
    pattern = re.compile(rf"^{name}=.*$", re.MULTILINE)
    line = f"{name}={value}"
    if pattern.search(content):
        return pattern.sub(lambda _: line, content)
    if content and not content.endswith("\n"):
        content += "\n"
    return content + line + "\n"


def _get_env_value(content: str, name: str) -> str | None:
    match = re.search(rf"^{name}=(.*)$", content, re.MULTILINE)
    return match.group(1) if match else None


@cli.command()
@click.option(
    "--write",
    type=click.Path(),
    default=None,
    help="Write SECRET_KEY to a .env file",
)
@click.option(
    "--rotate",
    is_flag=True,
    help="With --write, keep the current SECRET_KEY as SECRET_KEY_ALT",
)
@click.option(
    "--format",
    "fmt",
    default="urlsafe",
    type=click.Choice(["urlsafe", "hex", "base64"]),
    help="Output format for the secret key",
)
@click.option("--length", default=32, type=int, help="Number of random bytes")
def secret(write, rotate, fmt, length):
    """Generate a signing secret, optionally rotating the current one.

    \b
    Rotation keeps tokens signed with the old key valid until
    SECRET_KEY_ALT is removed from the environment.
    """
    if fmt == "urlsafe":
        key = secrets.token_urlsafe(length)
    elif fmt == "hex":
        key = secrets.token_hex(length)
    else:
        key = base64.b64encode(secrets.token_bytes(length)).decode("ascii")

    if not write:
        if rotate:
            click.echo("Error: --rotate requires --write", err=True)
            sys.exit(1)
        click.echo(key)
        return

    env_path = Path(write)
    env_content = env_path.read_text() if env_path.exists() else ""

    if rotate:
        current = _get_env_value(env_content, "SECRET_KEY")
        if not current:
            click.echo("Error: no SECRET_KEY to rotate", err=True)
            sys.exit(1)
        env_content = _set_env_value(env_content, "SECRET_KEY_ALT", current)

    env_content = _set_env_value(env_content, "SECRET_KEY", key)
    env_path.write_text(env_content)
    click.echo(f"SECRET_KEY written to {env_path}")
    if rotate:
        click.echo("Previous key kept as SECRET_KEY_ALT; remove it once old tokens expire")


@cli.command()
@click.argument("user_id")
@click.option("--admin", is_flag=True, help="Include the admin claim")
@click.option("--ttl", default=None, type=int, help="Lifetime in seconds")
def token(user_id, admin, ttl):
    """Mint an access token for USER_ID (development and scripting)."""
    from arvault.auth.secrets import signing_secret
    from arvault.auth.tokens import create_access_token
    from arvault.config import get_settings

    settings = get_settings()
    try:
        uid = UUID(user_id)
    except ValueError:
        click.echo(f"Error: {user_id!r} is not a UUID", err=True)
        sys.exit(1)
    lifetime = ttl or settings.auth.access_token_ttl
    secret_key = signing_secret(settings.secret_key or settings.secret_key_alt)
    click.echo(create_access_token(uid, secret_key, lifetime, is_admin=admin))


@cli.command()
@click.option("--dry-run", is_flag=True, help="Report what would be removed without removing it")
@click.option(
    "--retention-hours",
    default=None,
    type=int,
    help="Age after which pending uploads and unrecorded objects are removed",
)
def sweep(dry_run, retention_hours):
    """Reconcile the object store with the asset table."""
    from arvault.app_factory import build_db_config
    from arvault.config import get_settings
    from arvault.lib.storage import create_object_store
    from arvault.uploads.sweep import sweep as run_sweep

    settings = get_settings()
    hours = retention_hours or settings.uploads.pending_retention_hours

    async def _run():
        db_config = build_db_config(settings)
        store = create_object_store(settings.storage)
        try:
            async with db_config.get_session() as session:
                return await run_sweep(session, store, timedelta(hours=hours), dry_run=dry_run)
        finally:
            await store.close()
            await db_config.get_engine().dispose()

    report = asyncio.run(_run())
    prefix = "Would remove" if dry_run else "Removed"
    click.echo(f"{prefix} {len(report.aborted_uploads)} stale uploads")
    click.echo(f"{prefix} {len(report.dangling_rows)} rows without objects")
    click.echo(f"{prefix} {len(report.orphaned_objects)} objects without rows")
    for error in report.errors:
        click.echo(f"Error: {error}", err=True)
    if report.errors:
        sys.exit(1)


def _run_alembic(args: list[str]) -> None:
    """Build an Alembic Config programmatically and run the given command."""
    from alembic.config import CommandLine, Config

    package_dir = Path(__file__).parent
    alembic_ini = Path.cwd() / "alembic.ini"
    if not alembic_ini.exists():
        alembic_ini = package_dir / "alembic.ini"

    cfg = Config(str(alembic_ini))
    cfg.set_main_option("script_location", str(package_dir / "alembic"))

    cmd = CommandLine()
    options = cmd.parser.parse_args(args)
    if not hasattr(options, "cmd"):
        cmd.parser.error("too few arguments")
    else:
        cfg.cmd_opts = options
        fn, positional, kwarg = options.cmd
        fn(
            cfg,
            *[getattr(options, k, None) for k in positional],
            **{k: getattr(options, k, None) for k in kwarg},
        )


@cli.command(
    context_settings=dict(
        ignore_unknown_options=True,
        allow_extra_args=True,
    )
)
@click.pass_context
def db(ctx):
    """Run database migrations via Alembic.

    \b
    Examples:
        arvault db upgrade head    # Apply all migrations
        arvault db downgrade -1    # Rollback one migration
        arvault db current         # Show current revision
    """
    if not ctx.args:
        click.echo(ctx.get_help())
        return
    _run_alembic(ctx.args)


if __name__ == "__main__":
    cli()

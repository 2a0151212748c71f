import asyncio
import sys

import click
import uvicorn

from reverse_proxy_auth import __version__
from reverse_proxy_auth.app.probe import ConnectivityProbe
from reverse_proxy_auth.app.root_dn import infer_root_dn
from reverse_proxy_auth.app.server_spec import normalize_server
from reverse_proxy_auth.logging import configure_logging
from reverse_proxy_auth.settings import Settings


@click.group()
@click.version_option(__version__)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Trusted-header authentication gateway."""
    settings = Settings()
    configure_logging(settings.log_level, settings.log_type)
    ctx.obj = settings


@cli.command()
@click.option("--host", default=None, help="Interface to bind (default: $HOST)")
@click.option("--port", type=int, default=None, help="Port to bind (default: $PORT)")
@click.option("--workers", type=int, default=1, show_default=True)
@click.pass_obj
def start(settings: Settings, host: str | None, port: int | None, workers: int) -> None:
    """Run the HTTP server."""
    uvicorn.run(
        "reverse_proxy_auth.app.main:app",
        host=host or settings.host,
        port=port or settings.port,
        workers=workers,
        log_config=None,
        proxy_headers=True,
    )


@cli.command("check-server")
@click.argument("server")
@click.option("--bind-dn", default=None, envvar="LDAP_BIND_DN")
@click.option("--bind-password", default=None, envvar="LDAP_BIND_PASSWORD")
@click.pass_obj
def check_server(
    settings: Settings, server: str, bind_dn: str | None, bind_password: str | None
) -> None:
    """Check that SERVER accepts a bind, and explain why if it doesn't."""
    probe = ConnectivityProbe(timeout=settings.ldap_timeout)
    result = asyncio.run(probe.check(server, bind_dn, bind_password))
    if result.status == "ok":
        click.echo(result.message)
        return
    click.echo(f"{result.kind}: {result.message}", err=True)
    sys.exit(1)


@cli.command("infer-root-dn")
@click.argument("server")
@click.option("--bind-dn", default=None, envvar="LDAP_BIND_DN")
@click.option("--bind-password", default=None, envvar="LDAP_BIND_PASSWORD")
@click.pass_obj
def infer_root_dn_command(
    settings: Settings, server: str, bind_dn: str | None, bind_password: str | None
) -> None:
    """Print the root DN advertised by SERVER."""
    root_dn = asyncio.run(
        infer_root_dn(
            normalize_server(server) or "",
            bind_dn=bind_dn,
            bind_password=bind_password,
            timeout=settings.ldap_timeout,
        )
    )
    if root_dn is None:
        click.echo("Could not infer the root DN", err=True)
        sys.exit(1)
    click.echo(root_dn)


def main() -> None:
    cli()

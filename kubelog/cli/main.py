"""Click commands for kubelog."""

from __future__ import annotations

import asyncio
import sys

import click

from kubelog import __version__
from kubelog.app import main
from kubelog.errors import KubeLogError
from kubelog.kube.selectors import validate_app_name
from kubelog.models.config import AppLogRequest


def _check_app_name(ctx: click.Context, param: click.Parameter, value: str) -> str:
    try:
        return validate_app_name(value)
    except KubeLogError as exc:
        raise click.BadParameter(str(exc), ctx=ctx, param=param) from exc


@click.group()
@click.version_option(__version__, prog_name="kubelog")
def cli() -> None:
    """Read and tail the logs of applications running on Kubernetes."""


@cli.command("log")
@click.argument("app_name", metavar="APPNAME", callback=_check_app_name)
@click.option("-p", "--process", "process_name", default="", help="Process name.")
@click.option("-v", "--version", "deployment_version", type=click.IntRange(min=0), default=0, help="Deployment version.")
@click.option("-f", "--follow", is_flag=True, default=False, help="Specify if the logs should be streamed.")
@click.option(
    "--ignore-errors",
    is_flag=True,
    default=False,
    help="If watching / following pod logs, allow for any errors that occur to be non-fatal.",
)
@click.option(
    "--prefix",
    is_flag=True,
    default=False,
    help="Prefix each log line with the log source (pod name and container name).",
)
@click.option("--timestamps", is_flag=True, default=False, help="Include timestamps on each line in the log output.")
def log_command(
    app_name: str,
    process_name: str,
    deployment_version: int,
    follow: bool,
    ignore_errors: bool,
    prefix: bool,
    timestamps: bool,
) -> None:
    """Show logs of an application."""
    request = AppLogRequest(
        app_name=app_name,
        process_name=process_name,
        deployment_version=deployment_version,
        follow=follow,
        ignore_errors=ignore_errors,
        timestamps=timestamps,
        prefix=prefix,
    )
    code = asyncio.run(main(request, out=sys.stdout))
    if code:
        sys.exit(code)

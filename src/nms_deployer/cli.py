"""Command line entry point for the NMS deployment manager."""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import click

from nms_deployer.models.errors import DeploymentError, OperationCancelled
from nms_deployer.services.bundle import (
    DEFAULT_BUNDLE_URL,
    BundleProvider,
    LocalBundleProvider,
    RemoteBundleProvider,
)
from nms_deployer.services.orchestrator import StackOrchestrator
from nms_deployer.utils.logging import DEFAULT_LOG_FILE, setup_logger

DASHBOARDS_URL = "https://dashboards.nodemonitoring.io"
DEFAULT_CONFIG = Path.home() / "nms-config.json"


class _DownloadConfirmingProvider(BundleProvider):
    """Asks before downloading the remote bundle."""

    def __init__(self, inner: RemoteBundleProvider):
        self.inner = inner

    def describe(self) -> str:
        return self.inner.describe()

    async def fetch(self, workspace: Path) -> Path:
        click.echo(
            f"Additional files required for the deployment are available to download "
            f"from {self.inner.describe()}."
        )
        if not click.confirm("Do you want to proceed with the download?", default=True):
            raise OperationCancelled("Download aborted.")
        return await self.inner.fetch(workspace)


def _build_orchestrator(ctx: click.Context) -> StackOrchestrator:
    opts = ctx.obj
    if opts["bundle"]:
        provider: BundleProvider = LocalBundleProvider(opts["bundle"])
    else:
        provider = RemoteBundleProvider(opts["bundle_url"])
        if not opts["yes"]:
            provider = _DownloadConfirmingProvider(provider)

    confirm = None
    if not opts["yes"]:
        def confirm(prompt: str) -> bool:
            return click.confirm("Do you want to continue?", default=True)

    orchestrator = StackOrchestrator(bundle_provider=provider, confirm=confirm)
    orchestrator.probe.check_requirements()
    return orchestrator


def _run(ctx: click.Context, operation) -> None:
    """Run one operation; translate errors into a single message and exit code."""
    logger = logging.getLogger("nms.cli")
    try:
        orchestrator = _build_orchestrator(ctx)
        asyncio.run(operation(orchestrator))
    except OperationCancelled as e:
        logger.info(e.detail)
        ctx.exit(0)
    except DeploymentError as e:
        logger.error(str(e))
        logger.debug("Failure details", exc_info=True)
        ctx.exit(1)


@click.group()
@click.option(
    "--bundle",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Use a local deployment-files directory instead of downloading it.",
)
@click.option("--bundle-url", default=DEFAULT_BUNDLE_URL, show_default=True, help="Bundle archive URL.")
@click.option("-y", "--yes", is_flag=True, help="Answer yes to every prompt.")
@click.option("--log-file", default=DEFAULT_LOG_FILE, show_default=True, help="Log file path.")
@click.option("--debug", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, bundle: Optional[Path], bundle_url: str, yes: bool, log_file: str, debug: bool):
    """Deploy a NMS monitoring environment on your local host.

    A JSON configuration file is required to install or update the stack.
    For more details, please refer to the NMS Docs: https://app.nodemonitoring.io/docs
    """
    try:
        setup_logger("nms", log_file, level=logging.DEBUG if debug else logging.INFO)
    except OSError as e:
        raise click.ClickException(f"Could not open log file {log_file}: {e}")
    if hasattr(os, "geteuid") and os.geteuid() == 0:
        logging.getLogger("nms.cli").warning(
            "You are running this script as root. This is not recommended."
        )
    ctx.obj = {"bundle": bundle, "bundle_url": bundle_url, "yes": yes}


@cli.command()
@click.option(
    "-d", "--directory",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path.home(),
    show_default=True,
    help="Installation directory; the stack is deployed to <directory>/nms.",
)
@click.option(
    "-c", "--config",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_CONFIG,
    show_default=True,
    help="Path of the JSON configuration file.",
)
@click.pass_context
def install(ctx: click.Context, directory: Path, config: Path):
    """Deploy a new NMS stack."""

    async def operation(orchestrator: StackOrchestrator):
        root = await orchestrator.install(directory, config)
        logging.getLogger("nms.cli").info(
            f"NMS deployment at {root} was successful! "
            f"You can now visit {DASHBOARDS_URL} to check out the stats."
        )

    _run(ctx, operation)


@cli.command()
@click.option(
    "-d", "--directory",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path.home() / "nms",
    show_default=True,
    help="Existing NMS installation directory.",
)
@click.option(
    "-c", "--config",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_CONFIG,
    show_default=True,
    help="Path of the new JSON configuration file.",
)
@click.pass_context
def update(ctx: click.Context, directory: Path, config: Path):
    """Redeploy the stack with a new JSON configuration file."""

    async def operation(orchestrator: StackOrchestrator):
        root = await orchestrator.reconfigure(directory, config)
        logging.getLogger("nms.cli").info(
            f"New configuration was applied successfully at {root}! "
            f"You can now visit {DASHBOARDS_URL} to check out the stats."
        )

    _run(ctx, operation)


@cli.command()
@click.option(
    "-d", "--directory",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path.home() / "nms",
    show_default=True,
    help="Existing NMS installation directory.",
)
@click.pass_context
def uninstall(ctx: click.Context, directory: Path):
    """Stop all NMS containers and delete the installation directory."""

    async def operation(orchestrator: StackOrchestrator):
        await orchestrator.uninstall(directory)
        logging.getLogger("nms.cli").info(f"Successfully uninstalled NMS from {directory}")

    _run(ctx, operation)


@cli.command()
@click.option(
    "-d", "--directory",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path.home() / "nms",
    show_default=True,
    help="NMS installation directory.",
)
@click.pass_context
def status(ctx: click.Context, directory: Path):
    """Report whether a NMS deployment is installed and running."""

    async def operation(orchestrator: StackOrchestrator):
        state, running = await orchestrator.inspect(directory)
        click.echo(f"{directory}: {state.value}")
        for name in running:
            click.echo(f"  running: {name}")

    _run(ctx, operation)


def main():
    """Main entry point for the nms-deploy console script."""
    cli(prog_name="nms-deploy")


if __name__ == "__main__":
    main()

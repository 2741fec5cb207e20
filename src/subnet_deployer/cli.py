"""Command-line entrypoint for installing a subnet and chain on a fleet."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from subnet_deployer import __version__
from subnet_deployer.config import Settings, load_settings
from subnet_deployer.domain.models import DeploymentRequest, DeploymentResult
from subnet_deployer.errors import (
    ConfigError,
    ConnectivityError,
    DeploymentError,
    PreflightError,
)
from subnet_deployer.execution.aws_client import get_caller_identity, get_client_async
from subnet_deployer.fleet.dispatcher import FleetCommandDispatcher
from subnet_deployer.ledger.rpc import get_network_id
from subnet_deployer.ledger.transactor import LedgerTransactor
from subnet_deployer.ledger.units import navax_to_avax
from subnet_deployer.ledger.wallet import build_wallet, load_wallet_factory
from subnet_deployer.logging_utils import configure_logging
from subnet_deployer.orchestrator import DeploymentOrchestrator
from subnet_deployer.preflight import build_request, parse_node_map, run_preflight
from subnet_deployer.staging.stager import ArtifactStager
from subnet_deployer.state.db import RunStateStore

NAME = "install-subnet-chain"

EXIT_FAILED = 1
EXIT_INVALID_INPUT = 2

app = typer.Typer(no_args_is_help=True)
console = Console()


class LogLevel(str, Enum):
    debug = "debug"
    info = "info"


@app.callback()
def callback():
    """
    Subnet deployer CLI
    """


@app.command("version")
def version() -> None:
    """Print the installed version."""
    console.print(__version__)


def _confirm_prompt(summary: str):
    def _confirm(request: DeploymentRequest) -> bool:
        console.print(f"[yellow]{summary}[/yellow]")
        return typer.confirm(
            "Install the subnet and chain with these settings?",
            default=False,
        )

    return _confirm


def _announce(message: str) -> None:
    console.print(f"\n[bold green]STEP: {message}[/bold green]\n")


def _outcome_table(title: str, result_map) -> Table:
    table = Table(title=title)
    table.add_column("Instance")
    table.add_column("Status")
    table.add_column("SSM status")
    table.add_column("Detail")
    for instance_id, outcome in result_map.items():
        style = "green" if outcome.succeeded else "red"
        table.add_row(
            instance_id,
            f"[{style}]{outcome.status.value}[/{style}]",
            outcome.raw_status or "",
            escape(outcome.detail or ""),
        )
    return table


def _report(result: DeploymentResult) -> int:
    if result.install_outcomes:
        console.print(_outcome_table("install-subnet-chain", result.install_outcomes))
    if result.chain_config_outcomes:
        console.print(_outcome_table("install-chain", result.chain_config_outcomes))

    if result.aborted:
        console.print("[yellow]Aborted, nothing was changed.[/yellow]")
        return 0
    if result.error is not None:
        console.print(f"[bold red]FAILED:[/bold red] {escape(str(result.error))}")
        if result.subnet_id:
            console.print(f"subnet Id {result.subnet_id} was already created")
        if result.blockchain_id:
            console.print(f"blockchain Id {result.blockchain_id} was already created")
        return EXIT_FAILED
    console.print(
        f"\n[bold green]SUCCESS: subnet Id {result.subnet_id}, "
        f"blockchain Id {result.blockchain_id}[/bold green]\n"
    )
    return 0


async def _execute(
    request: DeploymentRequest,
    settings: Settings,
    key: str,
    skip_prompt: bool,
    logger: logging.Logger,
) -> DeploymentResult:
    network_id = await get_network_id(
        request.chain_rpc_url, timeout=settings.wallet.rpc_timeout_seconds
    )
    factory = load_wallet_factory(settings.wallet.factory)
    wallet = await build_wallet(factory, key, request.chain_rpc_url)
    try:
        balance = await wallet.balance()
    except Exception as exc:
        raise ConnectivityError(f"failed to fetch P-chain balance: {exc}") from exc
    logger.info(
        "loaded wallet '%s', P-chain balance %s AVAX (%d nAVAX, network id %d)",
        wallet.address,
        navax_to_avax(balance),
        balance,
        network_id,
    )

    s3_client = await get_client_async("s3", request.region)
    ssm_client = await get_client_async("ssm", request.region)
    sts_client = await get_client_async("sts", request.region)
    await get_caller_identity(sts_client)

    confirm = None
    if not skip_prompt:
        confirm = _confirm_prompt(
            f"wallet {wallet.address} has {navax_to_avax(balance)} AVAX; staking "
            f"{request.staking_amount_in_avax} AVAX per node for "
            f"{request.staking_period_in_days} days on "
            f"{len(request.node_ids_to_instance_ids)} nodes (network id {network_id})"
        )

    dispatcher = FleetCommandDispatcher(
        ssm_client,
        document_name=request.ssm_doc,
        region=request.region,
        output_bucket=request.s3_bucket,
        output_key_prefix=request.s3_key_prefix,
        command_parameter=settings.fleet.command_parameter,
        settle_seconds=settings.fleet.dispatch_settle_seconds,
        poll_timeout_seconds=settings.fleet.poll_timeout_seconds,
        poll_interval_seconds=settings.fleet.poll_interval_seconds,
        max_concurrent_polls=settings.fleet.max_concurrent_polls,
    )
    state_store = RunStateStore(settings.state.path) if settings.state.enabled else None
    try:
        orchestrator = DeploymentOrchestrator(
            request,
            transactor=LedgerTransactor(wallet),
            stager=ArtifactStager(s3_client, request.s3_bucket),
            dispatcher=dispatcher,
            logger=logger,
            confirm=confirm,
            announce=_announce,
            state_store=state_store,
            network_id=network_id,
            settings=settings.orchestrator,
        )
        return await orchestrator.run()
    finally:
        if state_store is not None:
            state_store.close()


@app.command(NAME)
def install_subnet_chain(
    region: str = typer.Option("us-west-2", "--region", help="AWS region for API calls"),
    s3_bucket: str = typer.Option(..., "--s3-bucket", help="S3 bucket for all artifacts"),
    s3_key_prefix: str = typer.Option(..., "--s3-key-prefix", help="S3 key prefix"),
    ssm_doc: str = typer.Option(
        ..., "--ssm-doc", help="SSM document name for subnet and chain install"
    ),
    chain_rpc_url: str = typer.Option(..., "--chain-rpc-url", help="P-chain RPC endpoint"),
    key: str = typer.Option(..., "--key", help="Key id (hex private key for hotkeys)"),
    staking_period_in_days: int = typer.Option(
        15,
        "--staking-period-in-days",
        help="Days to stake (subnet validation ends one day earlier)",
    ),
    staking_amount_in_avax: int = typer.Option(
        2000,
        "--staking-amount-in-avax",
        help="Primary network staking amount in AVAX (not nAVAX)",
    ),
    subnet_config_local_path: str = typer.Option("", "--subnet-config-local-path"),
    subnet_config_remote_dir: str = typer.Option("", "--subnet-config-remote-dir"),
    vm_binary_local_path: str = typer.Option(..., "--vm-binary-local-path"),
    vm_binary_remote_dir: str = typer.Option(
        ..., "--vm-binary-remote-dir", help="Plugin dir for VM binaries"
    ),
    vm_id: str = typer.Option(
        "", "--vm-id", help="32-byte VM id (if empty, converts chain name to id)"
    ),
    chain_name: str = typer.Option(..., "--chain-name"),
    chain_genesis_path: str = typer.Option(..., "--chain-genesis-path"),
    chain_config_local_path: str = typer.Option("", "--chain-config-local-path"),
    chain_config_remote_dir: str = typer.Option("", "--chain-config-remote-dir"),
    avalanchego_config_remote_path: str = typer.Option(..., "--avalanchego-config-remote-path"),
    node_ids_to_instance_ids: str = typer.Option(
        ...,
        "--node-ids-to-instance-ids",
        help="JSON object of node id to instance id",
    ),
    skip_prompt: bool = typer.Option(False, "--skip-prompt", "-s", help="Skips prompt mode"),
    log_level: LogLevel = typer.Option(LogLevel.info, "--log-level", "-l"),
):
    """Installs subnet and chain to target nodes."""
    try:
        settings = load_settings()
    except RuntimeError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_INVALID_INPUT) from exc

    logger = configure_logging(log_level.value)

    try:
        request = build_request(
            {
                "region": region,
                "s3_bucket": s3_bucket,
                "s3_key_prefix": s3_key_prefix,
                "ssm_doc": ssm_doc,
                "chain_rpc_url": chain_rpc_url,
                "staking_period_in_days": staking_period_in_days,
                "staking_amount_in_avax": staking_amount_in_avax,
                "subnet_config_local_path": subnet_config_local_path,
                "subnet_config_remote_dir": subnet_config_remote_dir,
                "vm_binary_local_path": vm_binary_local_path,
                "vm_binary_remote_dir": vm_binary_remote_dir,
                "vm_id": vm_id,
                "chain_name": chain_name,
                "chain_genesis_path": chain_genesis_path,
                "chain_config_local_path": chain_config_local_path,
                "chain_config_remote_dir": chain_config_remote_dir,
                "avalanchego_config_remote_path": avalanchego_config_remote_path,
                "node_ids_to_instance_ids": parse_node_map(node_ids_to_instance_ids),
            }
        )
        run_preflight(request)
    except PreflightError as exc:
        console.print(f"[bold red]Error:[/bold red] invalid input {escape(str(exc))}")
        raise typer.Exit(code=EXIT_INVALID_INPUT) from exc

    console.print(
        f"[green]Installing subnet with chain rpc url '{request.chain_rpc_url}', "
        f"S3 bucket '{request.s3_bucket}', S3 key prefix '{request.s3_key_prefix}', "
        f"VM id '{request.vm_id}', chain name '{request.chain_name}', "
        f"nodes {request.node_ids_to_instance_ids}[/green]"
    )

    try:
        result = asyncio.run(_execute(request, settings, key, skip_prompt, logger))
    except ConfigError as exc:
        console.print(f"[bold red]Error:[/bold red] configuration error: {escape(exc.message)}")
        raise typer.Exit(code=EXIT_INVALID_INPUT) from exc
    except DeploymentError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(exc.message)}")
        raise typer.Exit(code=EXIT_FAILED) from exc

    code = _report(result)
    if code:
        raise typer.Exit(code=code)


def run_entrypoint() -> None:
    app()

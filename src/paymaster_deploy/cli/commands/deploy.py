"""Deploy command."""
from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from typing import Any, List, Optional, Sequence

import click
from rich.console import Console

from ...artifacts import ArtifactLoader, ContractArtifact
from ...config import NETWORK_PRESETS, DeployConfig, get_network_config
from ...deployer import ContractDeployer, DeploymentResult
from ...exceptions import ChainIDMismatchError, DeploymentError, NonceConflictError, RPCError
from ...paymaster import PaymasterParams, build_paymaster_params
from ...signer import LocalAccountSigner
from .paymaster import build_mode, paymaster_mode_options

console = Console()


def parse_constructor_arg(value: str) -> Any:
    """JSON for arrays, tuples and bools; everything else stays a string."""
    text = value.strip()
    if text.startswith(("[", "{")) or text in ("true", "false"):
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"{value!r} is not valid JSON: {e}", param_hint="--arg") from e
    return value


async def _run_deployment(
    config: DeployConfig,
    signer: LocalAccountSigner,
    artifact: ContractArtifact,
    args: Sequence[Any],
    params: PaymasterParams,
    gas_per_pubdata: int,
    timeout: Optional[float],
) -> DeploymentResult:
    deployer = ContractDeployer.from_config(config, signer)
    try:
        return await deployer.deploy(
            artifact,
            args,
            params,
            gas_per_pubdata=gas_per_pubdata,
            timeout_seconds=timeout,
        )
    finally:
        await deployer.rpc_client.close()


@click.command()
@click.argument("contract_name")
@click.option("--arg", "constructor_args", multiple=True, help="Constructor argument, in order (repeatable)")
@click.option("--paymaster", "paymaster_address", help="Paymaster contract address")
@paymaster_mode_options
@click.option("--network", type=click.Choice(sorted(NETWORK_PRESETS)), help="Target network")
@click.option("--rpc-url", help="Override the network's RPC URL")
@click.option("--gas-per-pubdata", type=int, help="Gas per pubdata byte limit")
@click.option("--artifacts-dir", type=click.Path(file_okay=False), help="Compiled artifacts directory")
@click.option("--timeout", type=float, help="Confirmation timeout in seconds")
@click.option(
    "--private-key",
    envvar="WALLET_PRIVATE_KEY",
    show_envvar=True,
    help="Deployer private key",
)
@click.pass_context
def deploy(
    ctx,
    contract_name: str,
    constructor_args: List[str],
    paymaster_address: Optional[str],
    mode: str,
    token: Optional[str],
    min_allowance: Optional[int],
    inner_input: str,
    network: Optional[str],
    rpc_url: Optional[str],
    gas_per_pubdata: Optional[int],
    artifacts_dir: Optional[str],
    timeout: Optional[float],
    private_key: Optional[str],
):
    """Deploy CONTRACT_NAME with its gas fee paid by a paymaster."""
    config: DeployConfig = ctx.obj["config"]

    network_config = get_network_config(network) if network else replace(config.network)
    if rpc_url:
        network_config.rpc_url = rpc_url
    config = replace(
        config,
        network=network_config,
        gas_per_pubdata=gas_per_pubdata if gas_per_pubdata is not None else config.gas_per_pubdata,
        artifacts_dir=artifacts_dir or config.artifacts_dir,
    )

    paymaster_address = paymaster_address or config.paymaster_address
    if not paymaster_address:
        raise click.UsageError("A paymaster address is required (--paymaster or PAYMASTER_DEPLOY_PAYMASTER_ADDRESS)")
    if not private_key:
        raise click.UsageError("A private key is required (--private-key or WALLET_PRIVATE_KEY)")

    args = [parse_constructor_arg(a) for a in constructor_args]
    paymaster_mode = build_mode(mode, token, min_allowance, inner_input)

    try:
        signer = LocalAccountSigner(private_key, chain_id=network_config.chain_id)
        artifact = ArtifactLoader(config.artifacts_dir).load(contract_name)
        params = build_paymaster_params(paymaster_address, paymaster_mode)

        console.print(f"\n[bold blue]Deploying {artifact.contract_name}[/bold blue]\n")
        console.print(f"Network: [cyan]{network_config.name}[/cyan] (chain {network_config.chain_id})")
        console.print(f"Deployer: [cyan]{signer.address}[/cyan]")
        console.print(f"Paymaster: [cyan]{params.paymaster}[/cyan] ({paymaster_mode.type})")

        result = asyncio.run(
            _run_deployment(
                config, signer, artifact, args, params, config.gas_per_pubdata, timeout,
            )
        )
    except (DeploymentError, RPCError, ChainIDMismatchError, NonceConflictError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    console.print(f"Contract deployed to {result.contract_address}")
    console.print(f"  Transaction: {result.transaction_hash}")
    if result.block_number is not None:
        console.print(f"  Block: {result.block_number}")
    if result.gas_used is not None:
        console.print(f"  Gas used: {result.gas_used}")
    explorer_link = network_config.explorer_address_url(result.contract_address)
    if explorer_link:
        console.print(f"  Explorer: {explorer_link}")

"""Network preset commands."""
from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from ...config import NETWORK_PRESETS

console = Console()


@click.command()
def networks():
    """List built-in network presets."""
    table = Table(title="Networks")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Chain ID", justify="right", no_wrap=True)
    table.add_column("RPC URL")
    table.add_column("Address derivation")
    table.add_column("Type")

    for name, network in sorted(NETWORK_PRESETS.items()):
        table.add_row(
            name,
            str(network.chain_id),
            network.rpc_url,
            network.address_derivation.value,
            "[yellow]Testnet[/yellow]" if network.is_testnet else "[green]Mainnet[/green]",
        )

    console.print(table)

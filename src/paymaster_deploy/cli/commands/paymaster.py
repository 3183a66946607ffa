"""Paymaster parameter commands."""
from __future__ import annotations

import json
from typing import Optional

import click
from rich.console import Console

from ...exceptions import DeploymentError
from ...paymaster import (
    ApprovalBasedPaymasterMode,
    GeneralPaymasterMode,
    PaymasterMode,
    build_paymaster_params,
)

console = Console()


def paymaster_mode_options(func):
    """Options selecting the sponsorship mode, shared with ``deploy``."""
    options = [
        click.option(
            "--mode",
            type=click.Choice(["general", "approval-based"]),
            default="general",
            show_default=True,
            help="Paymaster flow",
        ),
        click.option("--token", help="ERC-20 token for approval-based mode"),
        click.option("--min-allowance", type=int, help="Minimal allowance for approval-based mode"),
        click.option("--inner-input", default="0x", show_default=True, help="Extra paymaster input (hex)"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_mode(
    mode: str,
    token: Optional[str],
    min_allowance: Optional[int],
    inner_input: str,
) -> PaymasterMode:
    """Turn CLI options into a paymaster mode."""
    try:
        if mode == "approval-based":
            if token is None or min_allowance is None:
                raise click.UsageError("--token and --min-allowance are required for approval-based mode")
            return ApprovalBasedPaymasterMode(
                token=token,
                min_allowance=min_allowance,
                inner_input=inner_input,
            )
        return GeneralPaymasterMode(inner_input=inner_input)
    except TypeError as e:
        raise click.BadParameter(str(e), param_hint="--inner-input") from e


@click.command("paymaster-params")
@click.argument("paymaster_address")
@paymaster_mode_options
@click.pass_context
def paymaster_params(
    ctx,
    paymaster_address: str,
    mode: str,
    token: Optional[str],
    min_allowance: Optional[int],
    inner_input: str,
):
    """Print the encoded paymaster params for PAYMASTER_ADDRESS."""
    try:
        params = build_paymaster_params(
            paymaster_address,
            build_mode(mode, token, min_allowance, inner_input),
        )
    except DeploymentError as e:
        console.print(f"[red]Error: {e}[/red]")
        ctx.exit(1)

    console.print_json(json.dumps(params.to_dict()))

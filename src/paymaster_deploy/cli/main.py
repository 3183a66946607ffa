"""
paymaster-deploy CLI main entry point.

Usage:
    paymaster-deploy [OPTIONS] COMMAND [ARGS]...
"""
from __future__ import annotations

import click

from ..config import get_config
from ..logging_utils import setup_logging
from .commands import deploy, networks, paymaster


@click.group()
@click.version_option(package_name="paymaster-deploy", message="%(prog)s %(version)s")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, verbose: bool):
    """Deploy contracts with gas fees sponsored by a paymaster."""
    ctx.ensure_object(dict)

    config = get_config()
    if verbose:
        setup_logging("DEBUG", config.logging.json_format)
    else:
        setup_logging(config.logging.level, config.logging.json_format)

    ctx.obj["config"] = config
    ctx.obj["verbose"] = verbose


# Register commands
cli.add_command(deploy.deploy)
cli.add_command(paymaster.paymaster_params)
cli.add_command(networks.networks)


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()

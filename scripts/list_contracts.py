#!/usr/bin/python3

from pathlib import Path

import click
from ape.cli import ConnectedProviderCommand

from dao_deployment.chain import implementation_address
from dao_deployment.state import StateStore


def _display_records(store: StateStore, show_implementations: bool) -> None:
    state = store.load()
    click.secho(f"\n{store.filepath}", fg="green")
    if state.account is not None:
        click.secho(f"    Account {state.account.address}", fg="yellow")

    for index, record in enumerate(state.contracts.values(), start=1):
        click.secho(f"        {index}. {record.name} {record.address}", fg="cyan")
        if not show_implementations:
            continue
        implementation = implementation_address(record.address)
        if implementation is not None:
            click.secho(f"           -> implementation {implementation}", fg="cyan")


@click.command(cls=ConnectedProviderCommand, name="list-contracts")
@click.option(
    "--state",
    "-s",
    "state_filepath",
    help="Deployment state file",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)
@click.option(
    "--implementations",
    help="Also read each proxy's current implementation from the chain.",
    is_flag=True,
    default=False,
)
def cli(state_filepath, implementations):
    """List all contracts recorded in a deployment state file."""
    _display_records(StateStore(filepath=state_filepath), implementations)


if __name__ == "__main__":
    cli()

from pathlib import Path

import click

from dao_deployment.types import MinInt, ParamsFile

params_option = click.option(
    "--params",
    "-p",
    "params_filepath",
    help="Deployment parameters YAML (path, or name under constructor_params).",
    type=ParamsFile(),
    default="local/dao.yml",
    show_default=True,
)

state_option = click.option(
    "--state",
    "-s",
    "state_filepath",
    help="Deployment state file; defaults to the one named in the parameters file.",
    type=click.Path(dir_okay=False, path_type=Path),
    required=False,
)

autosign_option = click.option(
    "--autosign",
    help="Sign and submit every transaction without asking for confirmation.",
    is_flag=True,
    default=False,
)

confirmations_option = click.option(
    "--confirmations",
    "-c",
    help="Number of confirmations to await for each transaction.",
    type=MinInt(0),
    required=False,
)

account_index_option = click.option(
    "--account-index",
    help="Derivation index used when a new operator account is created.",
    type=MinInt(0),
    default=0,
    show_default=True,
)

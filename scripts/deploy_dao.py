#!/usr/bin/python3

import os

import click
from ape import accounts, networks
from ape.cli import ConnectedProviderCommand
from ape_accounts import import_account_from_private_key
from eth_utils import keccak

from dao_deployment.artifacts import compile_contracts, find_artifact
from dao_deployment.chain import ApeConfirmation, ApeSigner
from dao_deployment.constants import LOCAL_FUNDING_AMOUNT
from dao_deployment.engine import DeploymentEngine
from dao_deployment.options import (
    account_index_option,
    autosign_option,
    confirmations_option,
    params_option,
    state_option,
)
from dao_deployment.params import DeploymentParameters
from dao_deployment.state import StateStore
from dao_deployment.utils import is_local_network

ACCOUNT_ALIAS = "dao-deployer"
PASSPHRASE_ENVVAR = "DAO_DEPLOYER_PASSPHRASE"

INITIAL_TOKEN_SUPPLY = 100


def _load_operator_account(store: StateStore, index: int):
    """Loads (or creates) the persisted operator account and makes it available to ape."""
    account_info = store.load_account(index=index)
    passphrase = os.environ.get(PASSPHRASE_ENVVAR)
    if not passphrase:
        raise click.ClickException(f"Please set {PASSPHRASE_ENVVAR}.")

    if ACCOUNT_ALIAS in accounts.aliases:
        account = accounts.load(ACCOUNT_ALIAS)
        if account.address != account_info.address:
            raise click.ClickException(
                f"ape account '{ACCOUNT_ALIAS}' is {account.address}, "
                f"but the deployment state uses {account_info.address}."
            )
    else:
        account = import_account_from_private_key(
            ACCOUNT_ALIAS, passphrase, account_info.private_key
        )
        print(f"Account imported: {account.address}")
    return account, passphrase


def _fund_on_local_network(account) -> None:
    if not is_local_network() or account.balance > 0:
        return
    validator = accounts.test_accounts[0]
    print(f"Sending {LOCAL_FUNDING_AMOUNT} to {account.address}")
    validator.transfer(account, LOCAL_FUNDING_AMOUNT)


def _setup_access_control(signer, confirmation, handles) -> None:
    """Mints the initial supply and hands token and governor over to the timelock."""
    token = handles["DaoTokenProxy"]
    governor = handles["DaoGovernorProxy"]
    timelock = handles["DaoTimelockControllerProxy"]
    if token.balanceOf(signer.address) > 0:
        print("(i) Access control already set up")
        return

    steps = [
        (token, "mint", signer.address, INITIAL_TOKEN_SUPPLY),
        (token, "delegate", signer.address),
        (token, "transferOwnership", timelock.address),
        (governor, "transferOwnership", timelock.address),
        (timelock, "grantRole", keccak(text="PROPOSER_ROLE"), governor.address),
        (timelock, "grantRole", keccak(text="EXECUTOR_ROLE"), governor.address),
        (timelock, "revokeRole", keccak(text="TIMELOCK_ADMIN_ROLE"), signer.address),
    ]
    for handle, method_name, *args in steps:
        receipt = signer.transact(handle, method_name, *args)
        confirmation.watch(receipt)


@click.command(cls=ConnectedProviderCommand, name="deploy-dao")
@params_option
@state_option
@autosign_option
@confirmations_option
@account_index_option
def cli(params_filepath, state_filepath, autosign, confirmations, account_index):
    """Deploys (or resumes deploying) the DAO contracts and sets up access control."""
    params = DeploymentParameters.from_yaml(filepath=params_filepath)
    chain_id = networks.active_provider.chain_id
    if params.chain_id is not None and params.chain_id != chain_id and not is_local_network():
        raise click.ClickException(
            f"chain_id in params file ({params.chain_id}) does not match "
            f"chain_id of current network ({chain_id})."
        )

    store = StateStore(filepath=state_filepath or params.state_filepath, chain_id=chain_id)
    account, passphrase = _load_operator_account(store=store, index=account_index)
    _fund_on_local_network(account)

    signer = ApeSigner(account=account, autosign=autosign, passphrase=passphrase)
    confirmation = ApeConfirmation(required_confirmations=confirmations)
    print(
        f"Account: {signer.address}",
        f"Params: {params_filepath}",
        f"State: {store.filepath}",
        f"Network: {networks.provider.network.name}",
        f"Chain ID: {chain_id}",
        sep="\n",
    )

    build = compile_contracts(params.contract_types)
    registry = params.build_registry(lambda contract_type: find_artifact(build, contract_type))

    engine = DeploymentEngine(
        signer=signer, confirmation=confirmation, store=store, interactive=not autosign
    )
    batch = engine.deploy_all(registry=registry)
    print(f"(i) {len(batch.records)} contract(s) deployed, {len(batch.results)} in total.")

    _setup_access_control(signer, confirmation, batch.results.handles)
    print("ready!")


if __name__ == "__main__":
    cli()

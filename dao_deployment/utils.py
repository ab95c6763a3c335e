import json
from pathlib import Path
from typing import Dict

import yaml
from ape import networks
from ape.contracts import ContractContainer

from dao_deployment.constants import ARTIFACTS_DIR, DEFAULT_STATE_FILENAME


class DeploymentConfigError(ValueError):
    pass


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def _load_json(filepath: Path) -> dict:
    """Loads a JSON file."""
    with open(filepath, "r") as file:
        return json.load(file)


def get_state_filepath(config: Dict) -> Path:
    """Returns the filepath of the deployment state file."""
    deployment = config.get("deployment") or dict()
    state_filepath = Path(deployment.get("state", DEFAULT_STATE_FILENAME))
    if not state_filepath.is_absolute():
        state_filepath = ARTIFACTS_DIR / state_filepath
    return state_filepath


def validate_config(config: Dict) -> Path:
    """
    Checks the shape of a deployment parameters file and returns
    the filepath of the state file it deploys into.
    """
    print("Validating parameters YAML...")
    if not isinstance(config, dict):
        raise DeploymentConfigError("Deployment parameters must be a mapping.")

    deployment = config.get("deployment")
    if deployment is not None and not isinstance(deployment, dict):
        raise DeploymentConfigError("'deployment' must be a mapping.")

    chain_id = (deployment or dict()).get("chain_id")
    if chain_id is not None:
        try:
            int(chain_id)
        except (TypeError, ValueError):
            raise DeploymentConfigError(f"chain_id '{chain_id}' is not an integer.")

    contracts = config.get("contracts")
    if not contracts:
        raise DeploymentConfigError("Deployment parameters file missing 'contracts' field.")
    if not isinstance(contracts, list):
        raise DeploymentConfigError("'contracts' must be a list.")

    constants = config.get("constants")
    if constants is not None and not isinstance(constants, dict):
        raise DeploymentConfigError("'constants' must be a mapping.")

    return get_state_filepath(config=config)


def is_local_network() -> bool:
    """Returns True when connected to a development network."""
    return networks.provider.network.name == "local"


def _get_dependency_contract_container(contract: str, project) -> ContractContainer:
    for dependency_name, dependency_versions in project.dependencies.items():
        if len(dependency_versions) > 1:
            raise ValueError(f"Ambiguous {dependency_name} dependency for {contract}")
        try:
            dependency_api = list(dependency_versions.values())[0]
            contract_container = getattr(dependency_api, contract)
            return contract_container
        except AttributeError:
            continue
    raise ValueError(f"No contract found with name '{contract}'.")


def get_contract_container(contract: str, project=None) -> ContractContainer:
    if project is None:
        from ape import project
    try:
        contract_container = getattr(project, contract)
    except AttributeError:
        # not in root project; check dependencies
        contract_container = _get_dependency_contract_container(contract, project)

    return contract_container

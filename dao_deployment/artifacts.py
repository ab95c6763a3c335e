from collections import OrderedDict, defaultdict
from pathlib import Path
from typing import Dict, Iterable, List, NamedTuple, Optional

from ape.contracts import ContractContainer
from ethpm_types import ContractType
from eth_typing import ABI

from dao_deployment.utils import _load_json, get_contract_container

SourcePath = str
ContractName = str
BuildOutput = Dict[SourcePath, Dict[ContractName, "BuildArtifact"]]


class BuildArtifact(NamedTuple):
    """Compiled interface and creation bytecode of a single contract."""

    name: ContractName
    abi: ABI
    bytecode: str

    @property
    def constructor_inputs(self) -> List[dict]:
        for entry in self.abi:
            if entry.get("type") == "constructor":
                return list(entry.get("inputs", []))
        return list()

    def has_method(self, method_name: str) -> bool:
        return any(
            entry.get("type") == "function" and entry.get("name") == method_name
            for entry in self.abi
        )

    def to_contract_type(self) -> ContractType:
        return ContractType.model_validate(
            {
                "contractName": self.name,
                "abi": list(self.abi),
                "deploymentBytecode": {"bytecode": self.bytecode},
            }
        )


def _abi_from_contract_type(contract_type: ContractType) -> ABI:
    contract_abi = list()
    for entry in contract_type.abi:
        contract_abi.append(entry.model_dump(mode="json", by_alias=True, exclude_none=True))
    return contract_abi


def artifact_from_container(container: ContractContainer) -> BuildArtifact:
    """Returns the build artifact of an ape contract container."""
    contract_type = container.contract_type
    bytecode = None
    if contract_type.deployment_bytecode:
        bytecode = contract_type.deployment_bytecode.bytecode
    if not bytecode:
        raise ValueError(f"{contract_type.name} has no deployment bytecode; is it abstract?")
    return BuildArtifact(
        name=contract_type.name,
        abi=_abi_from_contract_type(contract_type),
        bytecode=bytecode,
    )


def compile_contracts(contract_names: Iterable[ContractName], project=None) -> BuildOutput:
    """
    Compiles (through the ape project) the named contracts and groups the
    resulting artifacts by source path. Contracts not found in the root project
    are looked up in its dependencies (e.g. OpenZeppelin's ERC1967Proxy).
    Compiler errors are not handled here.
    """
    print("Building contracts...")
    output = defaultdict(OrderedDict)
    for contract_name in contract_names:
        container = get_contract_container(contract_name, project=project)
        source_path = container.contract_type.source_id or contract_name
        output[source_path][contract_name] = artifact_from_container(container)
    return dict(output)


def _artifact_from_json(contract_name: ContractName, data: dict) -> BuildArtifact:
    abi = data.get("abi")
    if abi is None:
        raise ValueError(f"Build output for {contract_name} has no abi.")

    bytecode = data.get("bytecode")
    if bytecode is None:
        # solc standard-json output
        bytecode = data.get("evm", {}).get("bytecode", {}).get("object")
    if isinstance(bytecode, dict):
        bytecode = bytecode.get("object")
    if not bytecode:
        raise ValueError(f"Build output for {contract_name} has no bytecode.")

    if not bytecode.startswith("0x"):
        bytecode = f"0x{bytecode}"
    return BuildArtifact(name=contract_name, abi=abi, bytecode=bytecode)


def load_build_output(filepath: Path) -> BuildOutput:
    """
    Loads precompiled artifacts shaped as
    {<source path>: {<contract name>: {abi, bytecode}}}.
    The "contracts" section of solc standard-json output is accepted as is.
    """
    data = _load_json(filepath)
    if "contracts" in data and isinstance(data["contracts"], dict):
        data = data["contracts"]

    output = dict()
    for source_path, contracts in data.items():
        output[source_path] = OrderedDict(
            (name, _artifact_from_json(name, artifact)) for name, artifact in contracts.items()
        )
    return output


def find_artifact(build: BuildOutput, contract_name: ContractName) -> BuildArtifact:
    """Returns the single artifact named contract_name across all source paths."""
    found: Optional[BuildArtifact] = None
    for source_path, contracts in build.items():
        if contract_name not in contracts:
            continue
        if found is not None:
            raise ValueError(
                f"Contract name {contract_name} is ambiguous - found in more than one source."
            )
        found = contracts[contract_name]
    if found is None:
        raise ValueError(f"No build artifact found with name '{contract_name}'.")
    return found

import typing
from collections import OrderedDict
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from dao_deployment.artifacts import BuildArtifact
from dao_deployment.constants import PROXY_CONTRACT_TYPE
from dao_deployment.proxy import proxy_name, proxy_template
from dao_deployment.templates import (
    DeployerAddress,
    EncodedCall,
    Reference,
    Template,
    TemplateRegistry,
    Transact,
    WrapProxy,
)
from dao_deployment.utils import DeploymentConfigError, _load_yaml, validate_config

CONTRACT_TYPE_KEY = "contract_type"
CONTRACT_CONSTRUCTOR_PARAMETER_KEY = "constructor"
CONTRACT_PROXY_PARAMETER_KEY = "proxy"
CONTRACT_PROXY_FOR_KEY = "proxy_for"
CONTRACT_SETUP_KEY = "setup"

PROXY_KEYS = {CONTRACT_TYPE_KEY, "name", "initializer", "args", CONTRACT_SETUP_KEY}
CONTRACT_KEYS = {
    CONTRACT_TYPE_KEY,
    CONTRACT_CONSTRUCTOR_PARAMETER_KEY,
    CONTRACT_PROXY_PARAMETER_KEY,
    CONTRACT_PROXY_FOR_KEY,
    CONTRACT_SETUP_KEY,
}

ArtifactLookup = Callable[[str], BuildArtifact]


class VariableContext:
    def __init__(
        self,
        contract_names: List[str],
        contract_name: str,
        constants: typing.Dict[str, Any] = None,
        proxy_for: Optional[str] = None,
    ):
        self.contract_names = contract_names or list()
        self.contract_name = contract_name
        self.constants = constants or dict()
        self.proxy_for = proxy_for


# Variables

VARIABLE_PREFIX = "$"
DEPLOYER_INDICATOR = "deployer"
ENCODE_PREFIX = "encode:"


def is_variable(param: Any) -> bool:
    """Returns True if the param is a variable."""
    return isinstance(param, str) and param.startswith(VARIABLE_PREFIX)


def _constant(constant_name: str, context: VariableContext) -> Any:
    try:
        return context.constants[constant_name]
    except KeyError:
        raise DeploymentConfigError(f"Constant '{constant_name}' not found in deployment file.")


def _split_arguments(text: str) -> List[str]:
    """Splits on top-level commas only, so list arguments keep their elements."""
    elements, current, depth = list(), list(), 0
    for char in text:
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth < 0:
                raise DeploymentConfigError(f"Unbalanced brackets in '{text}'.")
        elif char == "," and depth == 0:
            elements.append("".join(current))
            current = list()
            continue
        current.append(char)
    if depth != 0:
        raise DeploymentConfigError(f"Unbalanced brackets in '{text}'.")
    elements.append("".join(current))
    return elements


def _encoded_call(variable: str, context: VariableContext) -> EncodedCall:
    if context.proxy_for is None:
        raise DeploymentConfigError(
            f"'{VARIABLE_PREFIX}{variable}' used by {context.contract_name}, which is not a proxy; "
            "encoded calls target the proxied implementation."
        )
    variable_elements = _split_arguments(variable[len(ENCODE_PREFIX):])
    method_name = variable_elements[0].strip()
    if not method_name:
        raise DeploymentConfigError(f"Missing method name in '{VARIABLE_PREFIX}{variable}'.")
    # arguments inside the variable string are typed the way YAML would type them
    method_args = [
        _process_raw_value(yaml.safe_load(arg.strip()), context) for arg in variable_elements[1:]
    ]
    return EncodedCall(target=context.proxy_for, method=method_name, args=method_args)


def _variable_from_value(variable: str, context: VariableContext) -> Any:
    variable = variable[len(VARIABLE_PREFIX):]
    if variable == DEPLOYER_INDICATOR:
        return DeployerAddress()
    elif variable.startswith(ENCODE_PREFIX):
        return _encoded_call(variable, context)
    elif variable in context.contract_names:
        # declared contract names take precedence over constants
        return Reference(variable)
    elif variable.isupper():
        return _constant(variable, context)
    else:
        raise DeploymentConfigError(f"Contract name {variable} not found")


def _process_raw_value(value: Any, context: VariableContext) -> Any:
    if isinstance(value, list):
        return [_process_raw_value(v, context) for v in value]

    if is_variable(value):
        value = _variable_from_value(value, context)

    return value


def _process_raw_values(values: OrderedDict, context: VariableContext) -> OrderedDict:
    processed_parameters = OrderedDict()
    for name, value in values.items():
        processed_parameters[name] = _process_raw_value(value, context)
    return processed_parameters


def _validate_constructor_names(
    contract_name: str, artifact: BuildArtifact, parameter_names: List[str]
) -> None:
    """Validates configured constructor parameter names against the constructor ABI."""
    abi_inputs = artifact.constructor_inputs
    if len(parameter_names) != len(abi_inputs):
        raise DeploymentConfigError(
            f"Constructor parameters length mismatch - "
            f"{contract_name} ABI requires {len(abi_inputs)}, Got {len(parameter_names)}."
        )
    for position, (abi_input, name) in enumerate(zip(abi_inputs, parameter_names)):
        expected = abi_input.get("name")
        if expected and expected != name:
            raise DeploymentConfigError(
                f"{contract_name} constructor parameter '{name}' at position {position} does not "
                f"match the expected ABI name '{expected}'."
            )


class ContractEntry(typing.NamedTuple):
    name: str
    contract_type: str
    constructor: OrderedDict
    proxy_for: Optional[str]
    setup: List[dict]
    proxy: Optional[dict]


def _split_contract_info(contract_info: Any) -> typing.Tuple[str, dict]:
    if isinstance(contract_info, str):
        return contract_info, dict()
    if isinstance(contract_info, dict) and len(contract_info) == 1:
        contract_name = list(contract_info.keys())[0]  # only one entry
        contract_data = contract_info[contract_name] or dict()
        if not isinstance(contract_data, dict):
            raise DeploymentConfigError(f"Malformed deployment parameters for {contract_name}.")
        return contract_name, contract_data
    raise DeploymentConfigError("Malformed deployment parameters YAML.")


def _get_contract_names(config: typing.Dict) -> List[str]:
    """Returns the template names declared in the config, generated proxies included."""
    contract_names = list()
    for contract_info in config["contracts"]:
        contract_name, contract_data = _split_contract_info(contract_info)
        contract_names.append(contract_name)
        if CONTRACT_PROXY_PARAMETER_KEY in contract_data:
            proxy_data = contract_data[CONTRACT_PROXY_PARAMETER_KEY] or dict()
            if not isinstance(proxy_data, dict):
                raise DeploymentConfigError(f"Malformed proxy parameters for {contract_name}.")
            contract_names.append(proxy_data.get("name") or proxy_name(contract_name))
    return contract_names


class DeploymentParameters:
    """Represents the deployment parameters (templates, constants, state file) of a YAML file."""

    def __init__(self, config: typing.Dict, path: Optional[Path] = None):
        self.path = path
        self.config = config
        self.state_filepath = validate_config(config=config)
        deployment = config.get("deployment") or dict()
        chain_id = deployment.get("chain_id")
        self.chain_id = int(chain_id) if chain_id is not None else None
        self.constants = config.get("constants") or dict()
        self.contract_names = _get_contract_names(config)
        self.entries = self._parse_entries(config)

    @classmethod
    def from_yaml(cls, filepath: Path) -> "DeploymentParameters":
        config = _load_yaml(filepath)
        return cls(config=config, path=filepath)

    def _parse_entries(self, config: typing.Dict) -> "OrderedDict[str, ContractEntry]":
        print("Processing deployment parameters...")
        entries = OrderedDict()
        for contract_info in config["contracts"]:
            contract_name, contract_data = _split_contract_info(contract_info)
            if contract_name in entries:
                raise DeploymentConfigError(f"Duplicate contract name {contract_name}.")
            unknown_keys = set(contract_data) - CONTRACT_KEYS
            if unknown_keys:
                raise DeploymentConfigError(
                    f"Unknown parameters for {contract_name}: {', '.join(sorted(unknown_keys))}"
                )

            proxy_data = None
            if CONTRACT_PROXY_PARAMETER_KEY in contract_data:
                proxy_data = contract_data[CONTRACT_PROXY_PARAMETER_KEY] or dict()
                unknown_keys = set(proxy_data) - PROXY_KEYS
                if unknown_keys:
                    raise DeploymentConfigError(
                        f"Unknown proxy parameters for {contract_name}: "
                        f"{', '.join(sorted(unknown_keys))}"
                    )

            constructor = contract_data.get(CONTRACT_CONSTRUCTOR_PARAMETER_KEY) or OrderedDict()
            if not isinstance(constructor, dict):
                raise DeploymentConfigError(
                    f"Malformed constructor parameter config for {contract_name}."
                )

            proxy_for = contract_data.get(CONTRACT_PROXY_FOR_KEY)
            if proxy_for is not None and proxy_for not in self.contract_names:
                raise DeploymentConfigError(
                    f"{contract_name} is a proxy for unknown contract {proxy_for}."
                )

            entries[contract_name] = ContractEntry(
                name=contract_name,
                contract_type=contract_data.get(CONTRACT_TYPE_KEY, contract_name),
                constructor=OrderedDict(constructor),
                proxy_for=proxy_for,
                setup=list(contract_data.get(CONTRACT_SETUP_KEY) or []),
                proxy=proxy_data,
            )
        return entries

    @property
    def contract_types(self) -> List[str]:
        """Contract types to build, in first-use order."""
        contract_types = list()
        for entry in self.entries.values():
            types = [entry.contract_type]
            if entry.proxy is not None:
                types.append(entry.proxy.get(CONTRACT_TYPE_KEY, PROXY_CONTRACT_TYPE))
            for contract_type in types:
                if contract_type not in contract_types:
                    contract_types.append(contract_type)
        return contract_types

    def _context(self, contract_name: str, proxy_for: Optional[str] = None) -> VariableContext:
        return VariableContext(
            contract_names=self.contract_names,
            contract_name=contract_name,
            constants=self.constants,
            proxy_for=proxy_for,
        )

    def _setup_actions(
        self, setup: List[Dict], context: VariableContext, interface: BuildArtifact
    ) -> List[Transact]:
        actions = list()
        for step in setup:
            if not isinstance(step, dict) or "method" not in step:
                raise DeploymentConfigError(
                    f"Malformed setup step for {context.contract_name}: {step}"
                )
            if not interface.has_method(step["method"]):
                raise DeploymentConfigError(
                    f"Setup method '{step['method']}' of {context.contract_name} "
                    f"not found in {interface.name}."
                )
            args = _process_raw_value(list(step.get("args") or []), context)
            actions.append(Transact(method=step["method"], args=args))
        return actions

    def _template(self, entry: ContractEntry, artifacts: ArtifactLookup) -> Template:
        artifact = artifacts(entry.contract_type)
        _validate_constructor_names(entry.name, artifact, list(entry.constructor))
        context = self._context(entry.name, proxy_for=entry.proxy_for)
        constructor_args = list(_process_raw_values(entry.constructor, context).values())

        interface = artifact
        wiring = list()
        if entry.proxy_for is not None:
            wiring.append(WrapProxy())
            if entry.proxy_for in self.entries:
                interface = artifacts(self.entries[entry.proxy_for].contract_type)
        wiring.extend(self._setup_actions(entry.setup, context, interface))
        return Template(
            name=entry.name,
            artifact=artifact,
            constructor_args=constructor_args,
            wiring=wiring,
            proxy_for=entry.proxy_for,
        )

    def _proxy_template(self, entry: ContractEntry, artifacts: ArtifactLookup) -> Template:
        proxy_data = entry.proxy
        name = proxy_data.get("name") or proxy_name(entry.name)
        context = self._context(name, proxy_for=entry.name)
        implementation = artifacts(entry.contract_type)
        initializer = proxy_data.get("initializer")
        if initializer and not implementation.has_method(initializer):
            raise DeploymentConfigError(
                f"Initializer '{initializer}' of {name} not found in {implementation.name}."
            )
        initializer_args = _process_raw_value(list(proxy_data.get("args") or []), context)
        template = proxy_template(
            proxy_artifact=artifacts(proxy_data.get(CONTRACT_TYPE_KEY, PROXY_CONTRACT_TYPE)),
            implementation=entry.name,
            initializer=initializer,
            initializer_args=initializer_args,
            name=name,
        )
        template.wiring.extend(
            self._setup_actions(
                list(proxy_data.get(CONTRACT_SETUP_KEY) or []), context, implementation
            )
        )
        return template

    def build_registry(self, artifacts: ArtifactLookup) -> TemplateRegistry:
        """Builds the ordered template registry; `artifacts` maps contract type -> artifact."""
        templates = list()
        for entry in self.entries.values():
            templates.append(self._template(entry, artifacts))
            if entry.proxy is not None:
                templates.append(self._proxy_template(entry, artifacts))
        try:
            return TemplateRegistry(templates)
        except TemplateRegistry.Invalid as e:
            raise DeploymentConfigError(str(e)) from e

from collections import OrderedDict
from typing import Any, List, Mapping, Optional

from web3.auto import w3

from dao_deployment.artifacts import BuildArtifact
from dao_deployment.confirm import _confirm_resolution
from dao_deployment.proxy import proxy_abi
from dao_deployment.results import DeploymentBatch, DeploymentResult, DeploymentResults
from dao_deployment.state import DeployedContractRecord, StateStore
from dao_deployment.templates import Template, TemplateRegistry, resolve_arguments


class ConstructorArgumentsInvalid(ValueError):
    """Raised when resolved constructor arguments cannot be encoded for the constructor ABI."""


def validate_constructor_arguments(artifact: BuildArtifact, resolved_args: List[Any]) -> None:
    """Validates the resolved constructor arguments against the constructor ABI."""
    abi_inputs = artifact.constructor_inputs
    if len(resolved_args) != len(abi_inputs):
        raise ConstructorArgumentsInvalid(
            f"Constructor arguments length mismatch - "
            f"{artifact.name} ABI requires {len(abi_inputs)}, Got {len(resolved_args)}."
        )

    for position, (abi_input, value) in enumerate(zip(abi_inputs, resolved_args)):
        if not w3.is_encodable(abi_input["type"], value):
            name = abi_input.get("name") or f"#{position}"
            raise ConstructorArgumentsInvalid(
                f"{artifact.name} constructor argument '{name}' at position {position} has a "
                f"value '{value}' whose type does not match expected ABI type "
                f"'{abi_input['type']}'"
            )


class DeploymentEngine:
    """
    Deploys the templates of a registry one at a time, in declared order.

    Templates that already have a record are resumed from it: a handle is rebuilt
    from the recorded address and interface, no transaction is sent and no hook
    runs. Every freshly deployed template is recorded as soon as it completes
    (and persisted right away when a state store is attached).

    Errors from hooks, argument encoding, submission or confirmation are not
    caught; whatever completed before the failure stays in `results`/`records`.
    """

    def __init__(
        self,
        signer,
        confirmation,
        store: Optional[StateStore] = None,
        interactive: bool = False,
    ):
        self.signer = signer
        self.confirmation = confirmation
        self.store = store
        self.interactive = interactive
        self.results = DeploymentResults()
        self.records = OrderedDict()

    def deploy_all(
        self,
        registry: TemplateRegistry,
        existing_records: Optional[Mapping[str, DeployedContractRecord]] = None,
    ) -> DeploymentBatch:
        if existing_records is None:
            existing_records = self.store.load_records() if self.store else dict()

        self.results = DeploymentResults()
        self.records = OrderedDict()
        for template in registry:
            record = existing_records.get(template.name)
            if record is not None:
                result = self._resume(template, record)
            else:
                result = self._deploy(template)
            self.results.add(result)

        return DeploymentBatch(results=self.results, records=self.records)

    def _resume(self, template: Template, record: DeployedContractRecord) -> DeploymentResult:
        print(f"(i) Skipping {template.name}; already deployed at {record.address}")
        result = DeploymentResult(
            name=template.name,
            address=record.address,
            handle=None,
            abi=record.abi,
            artifact=template.artifact,
            resumed=True,
            template=template,
        )
        handle_abi = record.abi
        if template.proxy_for is not None:
            handle_abi = proxy_abi(template.proxy_for, self.results)
        result.rebind(handle=self.signer.at(record.address, handle_abi), handle_abi=handle_abi)
        return result

    def _deploy(self, template: Template) -> DeploymentResult:
        if template.pre_deploy is not None:
            template.pre_deploy(template, self.results)

        resolved_args = resolve_arguments(template.constructor_args, self.results, self.signer)
        validate_constructor_arguments(template.artifact, resolved_args)
        if self.interactive:
            _confirm_resolution(template.name, template.artifact, resolved_args)

        print(f"\nDeploying {template.name}...")
        receipt = self.signer.deploy(template.artifact, resolved_args)
        receipt = self.confirmation.watch(receipt)
        address = receipt.contract_address
        print(f"(i) {template.name} deployed at {address}")

        result = DeploymentResult(
            name=template.name,
            address=address,
            handle=self.signer.at(address, template.artifact.abi),
            abi=template.artifact.abi,
            constructor_args=resolved_args,
            artifact=template.artifact,
            receipt=receipt,
            template=template,
        )

        if template.post_deploy is not None:
            template.post_deploy(result, self.results)
        for action in template.wiring:
            action.apply(result, self.results, self.signer, self.confirmation)

        record = DeployedContractRecord(name=result.name, address=result.address, abi=result.abi)
        self.records[record.name] = record
        if self.store is not None:
            self.store.record(record)
        return result


def deploy_all(
    signer,
    registry: TemplateRegistry,
    existing_records: Optional[Mapping[str, DeployedContractRecord]] = None,
    confirmation=None,
    store: Optional[StateStore] = None,
) -> DeploymentBatch:
    """Deploys every template of the registry that has no existing record."""
    if confirmation is None:
        from dao_deployment.chain import ApeConfirmation

        confirmation = ApeConfirmation()
    engine = DeploymentEngine(signer=signer, confirmation=confirmation, store=store)
    return engine.deploy_all(registry=registry, existing_records=existing_records)

from typing import Any, Sequence

from ape.utils import ZERO_ADDRESS

from dao_deployment.artifacts import BuildArtifact


def _ask(question: str) -> None:
    """Aborts the deployment if the operator answers 'n'."""
    answer = input(f"{question} Y/N? ")
    if answer.lower().strip() == "n":
        print("Aborting deployment!")
        exit(-1)


def _continue() -> None:
    _ask("Continue")


def _contains_zero_address(value: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return any(_contains_zero_address(v) for v in value)
    return value == ZERO_ADDRESS


def _confirm_resolution(
    template_name: str, artifact: BuildArtifact, resolved_args: Sequence[Any]
) -> None:
    """Shows the resolved constructor arguments of a template and asks to deploy it."""
    if len(resolved_args) == 0:
        print(f"\n(i) No constructor arguments for {template_name}")
    else:
        print(f"\nConstructor arguments for {template_name} ({artifact.name})")
        abi_inputs = artifact.constructor_inputs
        for position, (abi_input, value) in enumerate(zip(abi_inputs, resolved_args)):
            name = abi_input.get("name") or f"#{position}"
            print(f"\t{name}={value}")

    _ask(f"Deploy {template_name}")
    if _contains_zero_address(resolved_args):
        _ask("Zero Address detected in constructor arguments; Continue?")

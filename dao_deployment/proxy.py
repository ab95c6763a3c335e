"""
Proxy wiring.

A proxy template declares the implementation it fronts with `proxy_for`. Its own
address is the on-chain identity while callers use the implementation's
interface, so the handle of a proxy is rebuilt at the proxy address with the
implementation ABI. The engine never does this implicitly; templates opt in
with the `WrapProxy` wiring action (or by calling `wrap_proxy` from a
post_deploy hook).
"""

from typing import Any, Optional, Sequence

from eth_typing import ABI

from dao_deployment.artifacts import BuildArtifact
from dao_deployment.constants import PROXY_SUFFIX, UUPS_UPGRADE_METHOD
from dao_deployment.results import DeploymentResult, DeploymentResults
from dao_deployment.templates import EncodedCall, Reference, Template, WrapProxy


def proxy_abi(proxy_for: Optional[str], results: DeploymentResults) -> ABI:
    """Returns the interface a proxy's handle should expose."""
    if proxy_for is None:
        raise ValueError("Not a proxy template: 'proxy_for' is not set.")
    return results[proxy_for].abi


def wrap_proxy(signer, result: DeploymentResult, results: DeploymentResults) -> Any:
    """Rebinds the result's handle to the implementation interface at the proxy address."""
    proxy_for = result.template.proxy_for if result.template is not None else None
    implementation_abi = proxy_abi(proxy_for, results)
    print(f"Wrapping {result.name} at {result.address} (as type {proxy_for}).")
    handle = signer.at(result.address, implementation_abi)
    result.rebind(handle=handle, handle_abi=implementation_abi)
    return handle


def proxy_name(implementation: str) -> str:
    return f"{implementation}{PROXY_SUFFIX}"


def proxy_template(
    proxy_artifact: BuildArtifact,
    implementation: str,
    initializer: Optional[str] = None,
    initializer_args: Sequence[Any] = (),
    name: Optional[str] = None,
) -> Template:
    """
    Builds an ERC1967 proxy template for an implementation declared earlier:
    constructor (_logic=<implementation address>, _data=<initializer calldata>).
    """
    if initializer is None:
        data = b""
    else:
        data = EncodedCall(target=implementation, method=initializer, args=list(initializer_args))
    return Template(
        name=name or proxy_name(implementation),
        artifact=proxy_artifact,
        constructor_args=[Reference(implementation), data],
        wiring=[WrapProxy()],
        proxy_for=implementation,
    )


def upgrade_proxy(
    signer,
    confirmation,
    proxy: DeploymentResult,
    implementation: DeploymentResult,
    method: str = UUPS_UPGRADE_METHOD,
) -> Any:
    """
    Points a UUPS proxy at a new implementation and rebinds the proxy's handle to
    the new interface. The proxy's persisted record does not change; the new
    implementation keeps its own record under its own name.
    """
    print(f"\nUpgrading {proxy.name} at {proxy.address} to {implementation.name}.")
    receipt = signer.transact(proxy.handle, method, implementation.address)
    confirmation.watch(receipt)
    handle = signer.at(proxy.address, implementation.abi)
    proxy.rebind(handle=handle, handle_abi=implementation.abi)
    return handle

from collections import OrderedDict
from typing import Any, List, NamedTuple, Optional

from eth_typing import ChecksumAddress
from eth_typing import ABI


class UnresolvedReference(KeyError):
    """Raised when a template refers to a contract that has not been deployed (yet)."""

    def __init__(self, name: str, available: List[str]):
        self.name = name
        self.available = available
        super().__init__(name)

    def __str__(self) -> str:
        available = ", ".join(self.available) or "none"
        return (
            f"No deployment result for '{self.name}' - it is either unknown or declared "
            f"later in the registry (resolved so far: {available})"
        )


class DeploymentResult:
    """
    Outcome of a single template: where it lives and the handle callers use.

    `abi` is the contract's own interface (what gets persisted) while `handle_abi`
    is the interface the handle is bound to; they differ once a proxy has been
    wrapped with its implementation's interface.
    """

    def __init__(
        self,
        name: str,
        address: ChecksumAddress,
        handle: Any,
        abi: ABI,
        constructor_args: Optional[List[Any]] = None,
        artifact=None,
        receipt=None,
        resumed: bool = False,
        template=None,
    ):
        self.name = name
        self.address = address
        self.handle = handle
        self.abi = abi
        self.handle_abi = abi
        self.constructor_args = constructor_args or list()
        self.artifact = artifact
        self.receipt = receipt
        self.resumed = resumed
        self.template = template

    def rebind(self, handle: Any, handle_abi: ABI) -> None:
        """Substitutes the handle callers use for this contract."""
        self.handle = handle
        self.handle_abi = handle_abi

    def __repr__(self) -> str:
        status = "resumed" if self.resumed else "deployed"
        return f"<DeploymentResult {self.name} at {self.address} ({status})>"


class DeploymentResults(OrderedDict):
    """Insertion-ordered mapping of contract name to DeploymentResult."""

    def __missing__(self, name: str):
        raise UnresolvedReference(name=name, available=list(self.keys()))

    def add(self, result: DeploymentResult) -> None:
        if result.name in self:
            raise ValueError(f"Duplicate deployment result for {result.name}")
        self[result.name] = result

    @property
    def handles(self) -> "OrderedDict[str, Any]":
        return OrderedDict((name, result.handle) for name, result in self.items())


class DeploymentBatch(NamedTuple):
    results: DeploymentResults
    records: "OrderedDict"

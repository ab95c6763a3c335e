import typing
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from ape import chain
from ape.api import AccountAPI, ReceiptAPI
from ape.cli.choices import select_account
from ape.contracts import ContractContainer, ContractInstance
from ape.utils import EMPTY_BYTES32
from ape_accounts import KeyfileAccount
from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address
from ethpm_types import ContractType
from eth_typing import ABI

from dao_deployment.artifacts import BuildArtifact
from dao_deployment.confirm import _continue
from dao_deployment.constants import EIP1967_IMPLEMENTATION_SLOT


class TransactionFailed(Exception):
    """Raised when a submitted transaction reverted or was never mined."""


class Signer(ABC):
    """The account that submits deployments and builds contract handles."""

    @property
    @abstractmethod
    def address(self) -> ChecksumAddress:
        raise NotImplementedError

    @abstractmethod
    def deploy(self, artifact: BuildArtifact, args: List[Any]) -> Any:
        """Submits a contract creation transaction and returns its (pending) receipt."""
        raise NotImplementedError

    @abstractmethod
    def at(self, address: ChecksumAddress, abi: ABI) -> Any:
        """Returns a handle to the contract at address using the given interface."""
        raise NotImplementedError

    @abstractmethod
    def transact(self, handle: Any, method_name: str, *args) -> Any:
        raise NotImplementedError

    @abstractmethod
    def encode_call(self, handle: Any, method_name: str, *args) -> bytes:
        raise NotImplementedError


class Confirmation(ABC):
    """Blocks until a submitted transaction is final."""

    @abstractmethod
    def watch(self, receipt: Any) -> Any:
        raise NotImplementedError


class ApeConfirmation(Confirmation):
    def __init__(self, required_confirmations: Optional[int] = None):
        self.required_confirmations = required_confirmations

    def watch(self, receipt: ReceiptAPI) -> ReceiptAPI:
        if receipt is None:
            raise TransactionFailed("Transaction was dropped before it produced a receipt.")
        if self.required_confirmations is not None:
            receipt.required_confirmations = self.required_confirmations
        receipt = receipt.await_confirmations()
        if receipt.failed:
            raise TransactionFailed(f"Transaction {receipt.txn_hash} reverted.")
        return receipt


def _contract_type(name: str, abi: ABI) -> ContractType:
    return ContractType.model_validate({"contractName": name, "abi": list(abi)})


def _describe_args(args: typing.Sequence[Any]) -> str:
    if not args:
        return "with no arguments"
    pretty_args = "\n\t".join(str(arg) for arg in args)
    return f"with arguments:\n\t{pretty_args}"


class ApeSigner(Signer):
    """
    Represents an ape account plus annotated transaction execution.
    """

    def __init__(
        self,
        account: Optional[AccountAPI] = None,
        autosign: bool = False,
        passphrase: Optional[str] = None,
    ):
        if account is None:
            self._account = select_account()
        else:
            self._account = account
        if autosign:
            print("WARNING: Autosign is enabled. Transactions will be signed automatically.")
            if isinstance(self._account, KeyfileAccount):
                self._account.set_autosign(True, passphrase=passphrase)
        self._autosign = autosign

    @property
    def account(self) -> AccountAPI:
        return self._account

    @property
    def address(self) -> ChecksumAddress:
        return to_checksum_address(self._account.address)

    def deploy(self, artifact: BuildArtifact, args: List[Any]) -> ReceiptAPI:
        container = ContractContainer(artifact.to_contract_type())
        instance = self._account.deploy(container, *args)
        return chain.get_receipt(instance.txn_hash)

    def at(self, address: ChecksumAddress, abi: ABI, name: str = "Contract") -> ContractInstance:
        return ContractInstance(address=address, contract_type=_contract_type(name, abi))

    def transact(self, handle: ContractInstance, method_name: str, *args) -> ReceiptAPI:
        method = getattr(handle, method_name)
        print(
            f"\nTransacting {handle.contract_type.name}[{handle.address[:10]}].{method_name} "
            f"{_describe_args(args)}"
        )
        if not self._autosign:
            _continue()
        return method(*args, sender=self._account)

    def encode_call(self, handle: ContractInstance, method_name: str, *args) -> bytes:
        method = getattr(handle, method_name)
        return bytes(method.encode_input(*args))


def implementation_address(proxy_address: ChecksumAddress) -> Optional[ChecksumAddress]:
    """
    Reads the runtime implementation of an EIP1967 proxy, which the deployment
    state does not track. Returns None when the implementation slot is empty.
    """
    slot = chain.provider.get_storage(address=proxy_address, slot=EIP1967_IMPLEMENTATION_SLOT)
    if slot == EMPTY_BYTES32:
        return None
    return to_checksum_address(slot[-20:])

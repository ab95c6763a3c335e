import json
import os
from collections import OrderedDict
from pathlib import Path
from typing import Dict, NamedTuple, Optional

from eth_account import Account
from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address, to_hex
from eth_typing import ABI

from dao_deployment.constants import (
    ABI_DIRNAME,
    ACCOUNT_PATH,
    STANDARD_STATE_JSON_FORMAT,
)

Account.enable_unaudited_hdwallet_features()

ContractName = str


class DeployedContractRecord(NamedTuple):
    """Represents a single deployed contract in the state file."""

    name: ContractName
    address: ChecksumAddress
    abi: ABI


class AccountInfo(NamedTuple):
    """The operator account persisted alongside the contracts."""

    address: ChecksumAddress
    private_key: str
    mnemonic: Optional[str] = None
    index: Optional[int] = None


class DeploymentState:
    """Everything a deployment run reads at start and persists as it goes."""

    def __init__(
        self,
        account: Optional[AccountInfo] = None,
        contracts: Optional[Dict[ContractName, DeployedContractRecord]] = None,
        chain_id: Optional[int] = None,
    ):
        self.account = account
        self.contracts = OrderedDict(contracts or {})
        self.chain_id = chain_id

    def to_json(self) -> dict:
        data = OrderedDict()
        if self.chain_id is not None:
            data["chainId"] = int(self.chain_id)
        account = OrderedDict()
        if self.account is not None:
            account["address"] = self.account.address
            account["privateKey"] = self.account.private_key
            if self.account.mnemonic:
                account["mnemonic"] = self.account.mnemonic
            if self.account.index is not None:
                account["index"] = self.account.index
        data["account"] = account
        data["contracts"] = OrderedDict(
            (name, {"address": record.address, "abi": json.dumps(record.abi)})
            for name, record in self.contracts.items()
        )
        return data

    @classmethod
    def from_json(cls, data: dict) -> "DeploymentState":
        if not isinstance(data, dict):
            raise ValueError("State must be a JSON object.")

        account_data = data.get("account") or dict()
        contracts_data = data.get("contracts") or dict()
        if not isinstance(account_data, dict) or not isinstance(contracts_data, dict):
            raise ValueError("State account and contracts must be JSON objects.")

        account = None
        if account_data.get("privateKey") or account_data.get("mnemonic"):
            account = AccountInfo(
                address=account_data.get("address"),
                private_key=account_data.get("privateKey"),
                mnemonic=account_data.get("mnemonic"),
                index=account_data.get("index"),
            )

        contracts = OrderedDict()
        for name, entry in contracts_data.items():
            if not isinstance(entry, dict):
                raise ValueError(f"Malformed state entry for {name}.")
            abi = entry["abi"]
            if isinstance(abi, str):
                abi = json.loads(abi)
            contracts[name] = DeployedContractRecord(
                name=name,
                address=to_checksum_address(entry["address"]),
                abi=abi,
            )

        chain_id = data.get("chainId")
        return cls(
            account=account,
            contracts=contracts,
            chain_id=int(chain_id) if chain_id is not None else None,
        )


def _derive_account(info: AccountInfo) -> AccountInfo:
    if info.mnemonic:
        index = info.index or 0
        account = Account.from_mnemonic(info.mnemonic, account_path=ACCOUNT_PATH.format(index))
    else:
        account = Account.from_key(info.private_key)
    return info._replace(address=account.address, private_key=to_hex(account.key))


def create_account(index: int = 0) -> AccountInfo:
    """Generates a fresh mnemonic-backed operator account."""
    account, mnemonic = Account.create_with_mnemonic(account_path=ACCOUNT_PATH.format(index))
    return AccountInfo(
        address=account.address,
        private_key=to_hex(account.key),
        mnemonic=mnemonic,
        index=index,
    )


class StateStore:
    """
    JSON-file backed deployment state. Records are appended one contract at a
    time so that a crash mid-batch never forgets contracts that exist on-chain.
    """

    class ChainMismatch(ValueError):
        """Raised when the state file belongs to a different chain"""

    class Conflict(ValueError):
        """Raised when a contract name is recorded twice with different addresses"""

    def __init__(
        self,
        filepath: Path,
        abi_dir: Optional[Path] = None,
        chain_id: Optional[int] = None,
    ):
        self.filepath = Path(filepath)
        self.abi_dir = Path(abi_dir) if abi_dir else self.filepath.parent / ABI_DIRNAME
        self.chain_id = chain_id
        self._state: Optional[DeploymentState] = None

    @property
    def state(self) -> DeploymentState:
        if self._state is None:
            self._state = self.load()
        return self._state

    def load(self) -> DeploymentState:
        """
        Returns the persisted state. A missing or unreadable file means
        "nothing deployed yet" and yields an empty state.
        """
        if not self.filepath.exists():
            print(f"No deployment state at {self.filepath}; starting fresh.")
            state = DeploymentState(chain_id=self.chain_id)
        else:
            try:
                with open(self.filepath, "r") as file:
                    state = DeploymentState.from_json(json.load(file))
            except (ValueError, KeyError, TypeError) as e:
                print(f"WARNING: Unreadable deployment state at {self.filepath} ({e}); "
                      "starting fresh.")
                state = DeploymentState(chain_id=self.chain_id)

        if self.chain_id is not None:
            if state.chain_id is None:
                state.chain_id = self.chain_id
            elif state.chain_id != self.chain_id:
                raise self.ChainMismatch(
                    f"State at {self.filepath} is for chain_id {state.chain_id}, "
                    f"not {self.chain_id}."
                )

        self._state = state
        return state

    def load_records(self) -> "OrderedDict[ContractName, DeployedContractRecord]":
        return OrderedDict(self.state.contracts)

    def load_account(self, index: int = 0) -> AccountInfo:
        """Returns the persisted operator account, creating and persisting one if needed."""
        state = self.state
        if state.account is None:
            print("Creating new account...")
            state.account = create_account(index=index)
        else:
            print("Loading existing account...")
            state.account = _derive_account(state.account)
        self.save(state)
        return state.account

    def record(self, record: DeployedContractRecord) -> None:
        """Appends a single contract record and persists immediately."""
        state = self.state
        existing = state.contracts.get(record.name)
        if existing is not None:
            if existing.address != record.address:
                raise self.Conflict(
                    f"{record.name} is already recorded at {existing.address}; "
                    f"refusing to overwrite with {record.address}."
                )
            return
        state.contracts[record.name] = record
        self.save(state)

    def save(self, state: Optional[DeploymentState] = None) -> Path:
        """Writes the state file and one raw ABI file per contract address."""
        state = state or self.state
        self._state = state

        self.filepath.parent.mkdir(parents=True, exist_ok=True)
        temp_filepath = self.filepath.with_suffix(".tmp")
        with open(temp_filepath, "w") as file:
            json.dump(state.to_json(), file, **STANDARD_STATE_JSON_FORMAT)
        os.replace(temp_filepath, self.filepath)

        self.abi_dir.mkdir(parents=True, exist_ok=True)
        for record in state.contracts.values():
            with open(self.abi_dir / record.address, "w") as file:
                json.dump(record.abi, file)

        return self.filepath

import json
from typing import Any, List

import pytest
from eth_utils import keccak, to_checksum_address
from hexbytes import HexBytes

from dao_deployment.artifacts import BuildArtifact
from dao_deployment.chain import Confirmation, Signer, TransactionFailed

DEPLOYER_ADDRESS = to_checksum_address("0x7e5f4552091a69125d5dfcb7b8c2659029395bdf")


# Artifacts


def _function(name, inputs=(), outputs=(), mutability="nonpayable"):
    return {
        "type": "function",
        "name": name,
        "stateMutability": mutability,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": [{"name": "", "type": t} for t in outputs],
    }


def _constructor(*inputs):
    return {
        "type": "constructor",
        "stateMutability": "nonpayable",
        "inputs": [{"name": n, "type": t} for n, t in inputs],
    }


def make_artifact(name, constructor_inputs=(), functions=()) -> BuildArtifact:
    abi = list()
    if constructor_inputs:
        abi.append(_constructor(*constructor_inputs))
    abi.extend(functions)
    # the fake chain dispatches on the artifact name, the bytecode is never executed
    return BuildArtifact(name=name, abi=abi, bytecode="0x6080604052" + keccak(text=name).hex())


RECORDER_FUNCTIONS = [_function("args", outputs=["uint256[]"], mutability="view")]

TOKEN_FUNCTIONS = [
    _function("initialize"),
    _function("mint", inputs=[("to", "address"), ("amount", "uint256")]),
    _function("balanceOf", inputs=[("account", "address")], outputs=["uint256"], mutability="view"),
    _function("version", outputs=["string"], mutability="view"),
    _function("upgradeTo", inputs=[("newImplementation", "address")]),
]

TIMELOCK_FUNCTIONS = [
    _function(
        "initialize",
        inputs=[("minDelay", "uint256"), ("proposers", "address[]"), ("executors", "address[]")],
    ),
    _function("getMinDelay", outputs=["uint256"], mutability="view"),
]

GOVERNOR_FUNCTIONS = [
    _function(
        "initialize",
        inputs=[
            ("token", "address"),
            ("timelock", "address"),
            ("votingDelay", "uint256"),
            ("votingPeriod", "uint256"),
            ("quorumPercentage", "uint256"),
        ],
    ),
    _function("token", outputs=["address"], mutability="view"),
    _function("timelock", outputs=["address"], mutability="view"),
    _function("votingPeriod", outputs=["uint256"], mutability="view"),
]


@pytest.fixture(scope="session")
def artifacts():
    return {
        "A": make_artifact("A", [("seed", "uint256")], RECORDER_FUNCTIONS),
        "B": make_artifact("B", [("peer", "address")], RECORDER_FUNCTIONS),
        "C": make_artifact("C", [("peers", "address[]")], RECORDER_FUNCTIONS),
        "DaoToken": make_artifact("DaoToken", functions=TOKEN_FUNCTIONS),
        "DaoTokenV2": make_artifact("DaoTokenV2", functions=TOKEN_FUNCTIONS),
        "DaoTimelockController": make_artifact(
            "DaoTimelockController", functions=TIMELOCK_FUNCTIONS
        ),
        "DaoGovernor": make_artifact("DaoGovernor", functions=GOVERNOR_FUNCTIONS),
        "ERC1967Proxy": make_artifact("ERC1967Proxy", [("_logic", "address"), ("_data", "bytes")]),
    }


# Contract logic


def encode_call(method_name: str, args: List[Any]) -> HexBytes:
    return HexBytes(json.dumps({"method": method_name, "args": list(args)}).encode())


def decode_call(data: bytes):
    payload = json.loads(bytes(data).decode())
    return payload["method"], payload["args"]


class RecorderLogic:
    def constructor(self, chain, address, storage, *args):
        storage["args"] = list(args)

    def args(self, storage):
        return storage["args"]


class TokenLogic:
    VERSION = "v1"

    def constructor(self, chain, address, storage):
        pass

    def initialize(self, storage):
        if storage.get("initialized"):
            raise RuntimeError("Initializable: contract is already initialized")
        storage["initialized"] = True
        storage["balances"] = dict()

    def mint(self, storage, to, amount):
        storage["balances"][to] = storage["balances"].get(to, 0) + amount

    def balanceOf(self, storage, account):
        return storage.get("balances", {}).get(account, 0)

    def version(self, storage):
        return self.VERSION

    def upgradeTo(self, storage, new_implementation):
        storage["implementation"] = new_implementation


class TokenV2Logic(TokenLogic):
    VERSION = "v2"


class TimelockLogic:
    def constructor(self, chain, address, storage):
        pass

    def initialize(self, storage, min_delay, proposers, executors):
        storage.update(min_delay=min_delay, proposers=proposers, executors=executors)

    def getMinDelay(self, storage):
        return storage["min_delay"]


class GovernorLogic:
    def constructor(self, chain, address, storage):
        pass

    def initialize(self, storage, token, timelock, voting_delay, voting_period, quorum):
        storage.update(token=token, timelock=timelock, voting_period=voting_period)

    def token(self, storage):
        return storage["token"]

    def timelock(self, storage):
        return storage["timelock"]

    def votingPeriod(self, storage):
        return storage["voting_period"]


class ProxyLogic:
    """ERC1967Proxy: delegates every call to the implementation, using its own storage."""

    def constructor(self, chain, address, storage, logic, data):
        storage["implementation"] = logic
        if data:
            method_name, args = decode_call(data)
            chain.execute(logic, storage, method_name, args)


LOGIC = {
    "A": RecorderLogic,
    "B": RecorderLogic,
    "C": RecorderLogic,
    "DaoToken": TokenLogic,
    "DaoTokenV2": TokenV2Logic,
    "DaoTimelockController": TimelockLogic,
    "DaoGovernor": GovernorLogic,
    "ERC1967Proxy": ProxyLogic,
}


# Chain


class FakeReceipt:
    def __init__(self, txn_hash: str, contract_address=None, failed: bool = False):
        self.txn_hash = txn_hash
        self.contract_address = contract_address
        self.failed = failed


class FakeChain:
    """In-memory stand-in for a node: contract logic is plain python picked by artifact name."""

    def __init__(self):
        self.code = dict()
        self.storage = dict()
        self.transactions = list()
        self.reverting = set()
        self._nonce = 0

    def _next_address(self):
        self._nonce += 1
        return to_checksum_address(keccak(text=f"contract-{self._nonce}")[-20:])

    def create(self, artifact: BuildArtifact, args: List[Any]) -> FakeReceipt:
        txn_hash = f"0x{len(self.transactions):064x}"
        self.transactions.append(("create", artifact.name, list(args)))
        if artifact.name in self.reverting:
            return FakeReceipt(txn_hash=txn_hash, failed=True)

        address = self._next_address()
        logic = LOGIC[artifact.name]()
        self.code[address] = logic
        self.storage[address] = dict()
        logic.constructor(self, address, self.storage[address], *args)
        return FakeReceipt(txn_hash=txn_hash, contract_address=address)

    def execute(self, logic_address, storage, method_name, args):
        logic = self.code[logic_address]
        return getattr(logic, method_name)(storage, *args)

    def call(self, address, method_name, args):
        logic = self.code[address]
        storage = self.storage[address]
        if isinstance(logic, ProxyLogic):
            return self.execute(storage["implementation"], storage, method_name, args)
        return self.execute(address, storage, method_name, args)

    @property
    def creations(self) -> List[str]:
        return [name for kind, name, *_ in self.transactions if kind == "create"]


class FakeMethod:
    def __init__(self, contract, name):
        self.contract = contract
        self.name = name

    def __call__(self, *args):
        return self.contract.chain.call(self.contract.address, self.name, list(args))

    def encode_input(self, *args) -> HexBytes:
        return encode_call(self.name, args)


class FakeContract:
    def __init__(self, chain: FakeChain, address, abi):
        self.chain = chain
        self.address = address
        self.abi = abi

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        functions = [e for e in self.abi if e.get("type") == "function" and e["name"] == name]
        if not functions:
            raise AttributeError(f"'{name}' is not part of the contract interface")
        return FakeMethod(self, name)


class FakeSigner(Signer):
    def __init__(self, chain: FakeChain, address=DEPLOYER_ADDRESS):
        self.chain = chain
        self._address = address

    @property
    def address(self):
        return self._address

    def deploy(self, artifact, args):
        return self.chain.create(artifact, args)

    def at(self, address, abi):
        return FakeContract(self.chain, address, abi)

    def transact(self, handle, method_name, *args):
        method = getattr(handle, method_name)
        self.chain.transactions.append(("call", handle.address, method_name, list(args)))
        method(*args)
        return FakeReceipt(txn_hash=f"0x{len(self.chain.transactions):064x}")

    def encode_call(self, handle, method_name, *args):
        return getattr(handle, method_name).encode_input(*args)


class FakeConfirmation(Confirmation):
    def __init__(self):
        self.watched = list()

    def watch(self, receipt):
        self.watched.append(receipt)
        if receipt.failed:
            raise TransactionFailed(f"Transaction {receipt.txn_hash} reverted.")
        return receipt


# Fixtures


@pytest.fixture
def fake_chain():
    return FakeChain()


@pytest.fixture
def signer(fake_chain):
    return FakeSigner(fake_chain)


@pytest.fixture
def confirmation():
    return FakeConfirmation()

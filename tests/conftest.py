"""Shared fixtures.

Most tests run against :py:class:`SimulatedChain`, an in-memory chain
that behaves like OpenZeppelin style proxies would, without needing compiled contracts.
"""

from dataclasses import dataclass, field
from typing import Any, Sequence

import eth_abi
import pytest
from eth_abi.exceptions import EncodingError
from eth_typing import HexAddress
from eth_utils import function_abi_to_4byte_selector, is_checksum_address, to_checksum_address
from eth_utils.abi import collapse_if_tuple
from hexbytes import HexBytes
from web3 import Web3

from eth_upgrades.abi import decode_address_word, encode_address_word
from eth_upgrades.artifacts import InMemoryArtifactStore
from eth_upgrades.connector import ChainCallFailed, ChainTransactionFailed, DeployedContract
from eth_upgrades.patterns import OPENZEPPELIN_PROXY_DESCRIPTOR

#: Fake bytecode -> what kind of contract the simulated chain creates
TRANSPARENT_PROXY_BYTECODE = "0x01"
UUPS_PROXY_BYTECODE = "0x02"
BEACON_PROXY_BYTECODE = "0x03"
BEACON_BYTECODE = "0x04"

_KINDS = {
    TRANSPARENT_PROXY_BYTECODE: "transparent",
    UUPS_PROXY_BYTECODE: "uups",
    BEACON_PROXY_BYTECODE: "beacon_proxy",
    BEACON_BYTECODE: "beacon",
}

DEPLOYER = to_checksum_address("0x" + "de" * 20)

#: Any view function of an implementation answers this
VIEW_RESULT = (1).to_bytes(32, "big")


@dataclass
class SimulatedContract:
    kind: str
    abi: list[dict]
    args: list[Any]
    implementation: HexAddress | None = None
    beacon: HexAddress | None = None


@dataclass
class SimulatedChain:
    """In-memory chain implementing :py:class:`eth_upgrades.connector.ChainConnector`.

    - Transparent and UUPS proxies answer ``implementation()`` and ``upgradeTo()``

    - Beacon proxies answer ``getBeacon()`` and forward everything else

    - Beacons answer ``implementation()`` and ``upgradeTo()``

    - Implementations answer their argument-less view functions and revert anything else

    Like Web3.py, refuses addresses that are not checksummed
    and constructor arguments that do not ABI encode.
    """

    contracts: dict[str, SimulatedContract] = field(default_factory=dict)

    #: (bytecode, address) of each deployment in order
    deployments: list[tuple[str, HexAddress]] = field(default_factory=list)

    #: Each sent transaction as dict
    transactions: list[dict] = field(default_factory=list)

    #: Deployments with these bytecodes revert
    failing_bytecodes: set[str] = field(default_factory=set)

    #: Upgrade calls to these addresses succeed but do nothing
    ignored_upgrade_targets: set[str] = field(default_factory=set)

    counter: int = 0

    def accounts(self) -> list[HexAddress]:
        return [DEPLOYER]

    def _next_hash(self, prefix: str) -> HexBytes:
        self.counter += 1
        return HexBytes(Web3.keccak(text=f"{prefix}-{self.counter}"))

    @staticmethod
    def _check_address(address: HexAddress):
        if not is_checksum_address(address):
            raise ValueError(f"web3.py only accepts checksum addresses, got {address}")

    @staticmethod
    def _encode_constructor_args(abi: list[dict], args: Sequence[Any]) -> bytes:
        constructor = next((entry for entry in abi if entry.get("type") == "constructor"), {"inputs": []})
        types = [collapse_if_tuple(i) for i in constructor["inputs"]]
        if len(types) != len(args):
            raise ChainTransactionFailed(None, f"Constructor takes {len(types)} arguments, got {len(args)}")
        try:
            return eth_abi.encode(types, list(args))
        except (EncodingError, TypeError, ValueError) as e:
            raise ChainTransactionFailed(None, f"Could not encode constructor arguments {list(args)}: {e}") from e

    def deploy(self, abi: list[dict], bytecode: str, from_address: HexAddress, args: Sequence[Any], gas: int | None = None) -> DeployedContract:
        self._check_address(from_address)
        self._encode_constructor_args(abi, args)

        tx_hash = self._next_hash("tx")
        if bytecode in self.failing_bytecodes:
            raise ChainTransactionFailed(tx_hash, f"Deployment reverted, tx hash is {tx_hash.hex()}")

        address = to_checksum_address(self._next_hash("address")[-20:])
        kind = _KINDS.get(bytecode, "implementation")
        contract = SimulatedContract(kind=kind, abi=abi, args=list(args))

        match kind:
            case "transparent" | "uups" | "beacon":
                contract.implementation = args[0]
            case "beacon_proxy":
                contract.beacon = args[0]

        self.contracts[address.lower()] = contract
        self.deployments.append((bytecode, address))
        return DeployedContract(address=address, tx_hash=tx_hash, gas_used=100_000)

    def get_contract(self, address: str) -> SimulatedContract | None:
        return self.contracts.get(address.lower())

    def _call_implementation(self, address: HexAddress, data: bytes) -> bytes:
        contract = self.get_contract(address)
        assert contract is not None, f"No implementation at {address}"
        for entry in contract.abi:
            if entry.get("type") == "function" and not entry.get("inputs") and entry.get("stateMutability") == "view":
                if function_abi_to_4byte_selector(entry) == data[0:4]:
                    return VIEW_RESULT
        raise ChainCallFailed(f"execution reverted: {address}")

    def call(self, to: HexAddress, data: bytes) -> bytes:
        self._check_address(to)
        contract = self.get_contract(to)
        if contract is None:
            # Plain account
            return b""

        selector = bytes(data[0:4])
        descriptor = OPENZEPPELIN_PROXY_DESCRIPTOR

        match contract.kind:
            case "transparent" | "uups":
                if selector == descriptor.implementation_selector:
                    return encode_address_word(contract.implementation)
                return self._call_implementation(contract.implementation, data)
            case "beacon_proxy":
                if selector == descriptor.beacon_selector:
                    return encode_address_word(contract.beacon)
                beacon = self.get_contract(contract.beacon)
                return self._call_implementation(beacon.implementation, data)
            case "beacon":
                if selector == descriptor.implementation_selector:
                    return encode_address_word(contract.implementation)
                raise ChainCallFailed("execution reverted")
            case _:
                return self._call_implementation(to, data)

    def send_transaction(self, from_address: HexAddress, to: HexAddress, data: bytes, gas: int | None = None) -> HexBytes:
        self._check_address(from_address)
        self._check_address(to)
        tx_hash = self._next_hash("tx")
        self.transactions.append({"from": from_address, "to": to, "data": bytes(data)})

        contract = self.get_contract(to)
        if contract is None:
            return tx_hash

        upgrade = bytes(data[0:4]) == OPENZEPPELIN_PROXY_DESCRIPTOR.upgrade_selector
        if upgrade and contract.kind in ("transparent", "uups", "beacon"):
            if to.lower() not in self.ignored_upgrade_targets:
                contract.implementation = decode_address_word(data[4:])
            return tx_hash

        raise ChainTransactionFailed(tx_hash, f"Transaction to {to} reverted")


def _view(name: str) -> dict:
    return {"type": "function", "name": name, "inputs": [], "outputs": [{"name": "", "type": "string"}], "stateMutability": "view"}


TOKEN_ABI = [
    {
        "type": "constructor",
        "inputs": [
            {"name": "name", "type": "string"},
            {"name": "symbol", "type": "string"},
            {"name": "decimals", "type": "uint8"},
            {"name": "supply", "type": "uint256"},
        ],
        "stateMutability": "nonpayable",
    },
    _view("name"),
    _view("symbol"),
]

TOKEN_V2_ABI = [_view("name"), _view("version")]

UPGRADEABLE_TOKEN_ABI = [
    {
        "type": "function",
        "name": "initialize",
        "inputs": [{"name": "name", "type": "string"}, {"name": "symbol", "type": "string"}],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    _view("name"),
]

PROXY_CONSTRUCTOR_ABI = [
    {
        "type": "constructor",
        "inputs": [{"name": "target", "type": "address"}, {"name": "data", "type": "bytes"}],
        "stateMutability": "payable",
    },
]


@pytest.fixture()
def chain() -> SimulatedChain:
    """Empty simulated chain."""
    return SimulatedChain()


@pytest.fixture()
def artifacts() -> InMemoryArtifactStore:
    """Compiled contracts known to the simulated chain."""
    store = InMemoryArtifactStore()
    store.add("Token", TOKEN_ABI, "0x6080a1")
    store.add("TokenV2", TOKEN_V2_ABI, "0x6080a2")
    store.add("UpgradeableToken", UPGRADEABLE_TOKEN_ABI, "0x6080a3")
    store.add("TransparentProxy", PROXY_CONSTRUCTOR_ABI, TRANSPARENT_PROXY_BYTECODE)
    store.add("UUPSProxy", PROXY_CONSTRUCTOR_ABI, UUPS_PROXY_BYTECODE)
    store.add("BeaconProxy", PROXY_CONSTRUCTOR_ABI, BEACON_PROXY_BYTECODE)
    store.add(
        "UpgradeableBeacon",
        [{"type": "constructor", "inputs": [{"name": "implementation", "type": "address"}], "stateMutability": "nonpayable"}],
        BEACON_BYTECODE,
    )
    return store

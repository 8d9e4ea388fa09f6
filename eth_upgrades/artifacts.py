"""Compiled contract artifact loading.

Read ABI and bytecode from a build folder that a Solidity compiler toolchain produced.

Supported layouts:

- ``build/Token.json`` - solc, Truffle, Hardhat flattened output

- ``out/Token.sol/Token.json`` - Forge output

Supported bytecode formats:

- ``"bytecode": "0x..."`` - solc / Truffle / Hardhat

- ``"bytecode": {"object": "0x...", "sourceMap": ..., "linkReferences": ...}`` - Forge
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from eth_upgrades.exceptions import ArtifactNotFoundError

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ContractArtifact:
    """Compiled contract, ready to be deployed."""

    #: Contract name, e.g. ``Token``
    name: str

    #: Contract ABI as JSON list
    abi: list[dict] = field(repr=False)

    #: Deployment bytecode as 0x prefixed hex string
    bytecode: str = field(repr=False)


class ArtifactStore(Protocol):
    """Where we get compiled contracts from."""

    def load_artifact(self, contract_name: str) -> ContractArtifact:
        """Load a compiled contract.

        :raise ArtifactNotFoundError:
            No compiled artifact for the contract name
        """


def parse_artifact(contract_name: str, contract_interface: dict) -> ContractArtifact:
    """Turn compiler output JSON to :py:class:`ContractArtifact`.

    :raise ArtifactNotFoundError:
        The JSON does not contain deployable bytecode
    """

    if type(contract_interface) != dict:
        # Etherscan copy-pasted ABI lists have no bytecode
        raise ArtifactNotFoundError(contract_name, f"Artifact for {contract_name} does not contain bytecode")

    abi = contract_interface.get("abi", [])
    bytecode = contract_interface.get("bytecode")

    if type(bytecode) == dict:
        # Sol 0.8 / Forge?
        # Contains keys object, sourceMap, linkReferences
        bytecode = bytecode.get("object")

    if not bytecode or bytecode == "0x":
        # Interfaces and abstract contracts compile to empty bytecode
        raise ArtifactNotFoundError(contract_name, f"Artifact for {contract_name} does not contain bytecode")

    if not bytecode.startswith("0x"):
        bytecode = "0x" + bytecode

    return ContractArtifact(name=contract_name, abi=abi, bytecode=bytecode)


class BuildFolderArtifactStore:
    """Load artifacts from a compiler output folder.

    Example:

    .. code-block:: python

        artifacts = BuildFolderArtifactStore(Path("build"))
        token = artifacts.load_artifact("Token")
        print(f"Token has {len(token.abi)} ABI entries")

    Loaded artifacts are cached for the lifetime of the store.
    This caches compiler output files only. Deployment and upgrade functions
    never cache anything read from the chain.
    Create a new store after recompiling.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.cache: dict[str, ContractArtifact] = {}

    def __repr__(self):
        return f"<BuildFolderArtifactStore {self.path}>"

    def get_artifact_path(self, contract_name: str) -> Path | None:
        """Resolve the JSON file for a contract, or ``None`` if there is none."""
        candidates = [
            self.path / f"{contract_name}.json",
            self.path / f"{contract_name}.sol" / f"{contract_name}.json",
        ]
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        return None

    def load_artifact(self, contract_name: str) -> ContractArtifact:
        assert type(contract_name) == str, f"Got {type(contract_name)}"

        cached = self.cache.get(contract_name)
        if cached is not None:
            return cached

        artifact_path = self.get_artifact_path(contract_name)
        if artifact_path is None:
            raise ArtifactNotFoundError(contract_name, f"Contract artifact {contract_name}.json not found in {self.path}")

        logger.debug("Loading artifact %s from %s", contract_name, artifact_path)

        try:
            with open(artifact_path, "rt", encoding="utf-8") as f:
                contract_interface = json.load(f)
        except json.JSONDecodeError as e:
            raise ArtifactNotFoundError(contract_name, f"Artifact {artifact_path} is not valid JSON: {e}") from e

        artifact = parse_artifact(contract_name, contract_interface)
        self.cache[contract_name] = artifact
        return artifact


class InMemoryArtifactStore:
    """Artifacts passed in as Python data.

    Useful when the compiler output is already loaded,
    or for unit testing.
    """

    def __init__(self, artifacts: dict[str, ContractArtifact] | None = None):
        self.artifacts = artifacts or {}

    def add(self, name: str, abi: list[dict], bytecode: str) -> ContractArtifact:
        artifact = ContractArtifact(name=name, abi=abi, bytecode=bytecode)
        self.artifacts[name] = artifact
        return artifact

    def load_artifact(self, contract_name: str) -> ContractArtifact:
        try:
            return self.artifacts[contract_name]
        except KeyError as e:
            raise ArtifactNotFoundError(contract_name) from e

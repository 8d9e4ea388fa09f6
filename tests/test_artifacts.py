"""Compiled artifact loading from a build folder."""

import json
from pathlib import Path

import pytest

from eth_upgrades.artifacts import BuildFolderArtifactStore, InMemoryArtifactStore
from eth_upgrades.exceptions import ArtifactNotFoundError

ABI = [{"type": "function", "name": "name", "inputs": [], "outputs": [{"name": "", "type": "string"}], "stateMutability": "view"}]


@pytest.fixture()
def build_folder(tmp_path: Path) -> Path:
    """A build folder with solc, Forge and broken outputs."""
    (tmp_path / "Token.json").write_text(json.dumps({"contractName": "Token", "abi": ABI, "bytecode": "0x6080"}))

    forge_dir = tmp_path / "TokenV2.sol"
    forge_dir.mkdir()
    (forge_dir / "TokenV2.json").write_text(json.dumps({"abi": ABI, "bytecode": {"object": "6080", "sourceMap": "", "linkReferences": {}}}))

    (tmp_path / "IToken.json").write_text(json.dumps({"abi": ABI, "bytecode": "0x"}))
    (tmp_path / "Etherscan.json").write_text(json.dumps(ABI))
    (tmp_path / "Broken.json").write_text("{not json")
    return tmp_path


def test_load_solc_artifact(build_folder: Path):
    store = BuildFolderArtifactStore(build_folder)
    artifact = store.load_artifact("Token")
    assert artifact.name == "Token"
    assert artifact.abi == ABI
    assert artifact.bytecode == "0x6080"

    # Second load comes from the cache
    assert store.load_artifact("Token") is artifact


def test_load_forge_artifact(build_folder: Path):
    """Forge nests bytecode under object and lays out files per source file."""
    artifact = BuildFolderArtifactStore(build_folder).load_artifact("TokenV2")
    assert artifact.bytecode == "0x6080"


@pytest.mark.parametrize("contract_name", ["Missing", "IToken", "Etherscan", "Broken"])
def test_artifact_not_found(build_folder: Path, contract_name: str):
    """Missing files, interfaces without bytecode and malformed JSON cannot be deployed."""
    with pytest.raises(ArtifactNotFoundError) as excinfo:
        BuildFolderArtifactStore(build_folder).load_artifact(contract_name)
    assert excinfo.value.contract_name == contract_name


def test_in_memory_store():
    store = InMemoryArtifactStore()
    store.add("Token", ABI, "0x6080")
    assert store.load_artifact("Token").bytecode == "0x6080"
    with pytest.raises(ArtifactNotFoundError):
        store.load_artifact("TokenV2")

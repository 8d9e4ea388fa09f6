"""Read deployment configuration from environment variables.

.. code-block:: shell

    export JSON_RPC_URL=http://127.0.0.1:8545
    # Optional, otherwise use node managed accounts
    export PRIVATE_KEY=0x...
    # Optional, defaults to build
    export ARTIFACTS_PATH=out
    # Optional
    export DEPLOY_GAS_LIMIT=5000000
    export VALIDATE_STORAGE=true
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from eth_upgrades.artifacts import BuildFolderArtifactStore
from eth_upgrades.connector import Web3ChainConnector

#: Where compiled contracts are read from if not configured
DEFAULT_ARTIFACTS_PATH = Path("build")

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def _parse_bool(name: str, value: str) -> bool:
    value = value.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"Environment variable {name} must be a boolean, got {value!r}")


@dataclass(slots=True, frozen=True)
class DeploymentConfig:
    """Settings for deploying and upgrading proxies."""

    json_rpc_url: str

    private_key: str | None = field(default=None, repr=False)

    artifacts_path: Path = DEFAULT_ARTIFACTS_PATH

    #: Gas limit for each transaction. Estimate if not set.
    gas_limit: int | None = None

    #: Run the storage layout validator before upgrades
    validate_storage: bool = True

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "DeploymentConfig":
        """Read configuration from environment variables.

        :param environ:
            Use this mapping instead of ``os.environ``

        :raises ValueError:
            If ``JSON_RPC_URL`` is not set or a value cannot be parsed
        """
        if environ is None:
            environ = os.environ

        json_rpc_url = environ.get("JSON_RPC_URL")
        if not json_rpc_url:
            raise ValueError("Environment variable JSON_RPC_URL is not set")

        gas_limit = environ.get("DEPLOY_GAS_LIMIT")
        if gas_limit:
            try:
                gas_limit = int(gas_limit)
            except ValueError as e:
                raise ValueError(f"Environment variable DEPLOY_GAS_LIMIT must be an integer, got {gas_limit!r}") from e
        else:
            gas_limit = None

        validate_storage = environ.get("VALIDATE_STORAGE")
        validate_storage = _parse_bool("VALIDATE_STORAGE", validate_storage) if validate_storage else True

        return cls(
            json_rpc_url=json_rpc_url,
            private_key=environ.get("PRIVATE_KEY") or None,
            artifacts_path=Path(environ.get("ARTIFACTS_PATH") or DEFAULT_ARTIFACTS_PATH),
            gas_limit=gas_limit,
            validate_storage=validate_storage,
        )

    def create_connector(self) -> Web3ChainConnector:
        """Connect to the configured node."""
        return Web3ChainConnector.connect(self.json_rpc_url, self.private_key)

    def create_artifact_store(self) -> BuildFolderArtifactStore:
        return BuildFolderArtifactStore(self.artifacts_path)

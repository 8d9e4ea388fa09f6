"""Proxy deployment and upgrade errors.

Every step of a deployment or an upgrade fails fast. There are no retries
and no compensating transactions: if a contract was already deployed
when a later step fails, it stays orphaned on the chain.

The exceptions carry the contract name, pattern or address involved,
so the operator can figure out how far the flow got.
"""

from typing import Any, Sequence

from eth_typing import HexAddress
from hexbytes import HexBytes


class ProxyUpgradeError(Exception):
    """Base class for all errors raised by this package."""


class ArtifactNotFoundError(ProxyUpgradeError):
    """There is no compiled artifact for a contract name."""

    def __init__(self, contract_name: str, msg: str | None = None):
        super().__init__(msg or f"Compiled artifact not found for contract {contract_name}")
        self.contract_name = contract_name


class UnsupportedPatternError(ProxyUpgradeError):
    """Proxy pattern identifier is not one of transparent, uups, beacon."""

    def __init__(self, pattern: Any):
        super().__init__(f"Unsupported proxy pattern: {pattern!r}")
        self.pattern = pattern


class DeploymentError(ProxyUpgradeError):
    """Contract deployment was rejected or reverted."""

    def __init__(
        self,
        contract_name: str,
        constructor_args: Sequence[Any],
        msg: str,
        tx_hash: HexBytes | None = None,
    ):
        super().__init__(f"Deploying {contract_name} with args {list(constructor_args)} failed: {msg}")
        self.contract_name = contract_name
        self.constructor_args = constructor_args
        self.tx_hash = tx_hash


class PatternDetectionError(ProxyUpgradeError):
    """Could not classify the proxy at an address."""

    def __init__(self, address: HexAddress | str, msg: str | None = None):
        super().__init__(msg or f"Unable to detect proxy pattern at {address}")
        self.address = address


class StorageValidationError(ProxyUpgradeError):
    """Storage layout validator rejected an implementation pair."""

    def __init__(self, old_address: HexAddress | str, new_address: HexAddress | str, msg: str | None = None):
        super().__init__(msg or f"Storage layout of {new_address} is not compatible with {old_address}")
        self.old_address = old_address
        self.new_address = new_address


class UpgradeTransactionError(ProxyUpgradeError):
    """The administrative upgrade call could not be performed."""

    def __init__(self, target: HexAddress | str, msg: str, tx_hash: HexBytes | None = None):
        super().__init__(f"Upgrade of {target} failed: {msg}")
        self.target = target
        self.tx_hash = tx_hash

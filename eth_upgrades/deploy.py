"""Deploy implementation contracts and proxies in front of them.

The deployment is strictly ordered, as each contract address is a constructor argument of the next:

1. Implementation contract

2. Beacon pointing to the implementation (beacon pattern only)

3. Proxy pointing to the implementation, or to the beacon

If a later step fails, already deployed contracts are left orphaned on the chain.
"""

import logging
from dataclasses import dataclass
from typing import Any, Sequence

from eth_typing import HexAddress
from hexbytes import HexBytes

from eth_upgrades.abi import coerce_constructor_args, encode_initializer_payload, normalise_address
from eth_upgrades.artifacts import ArtifactStore
from eth_upgrades.connector import ChainConnector, ChainConnectorError, DeployedContract
from eth_upgrades.exceptions import DeploymentError
from eth_upgrades.patterns import BEACON_ARTIFACT_NAME, ProxyPattern, resolve_pattern
from eth_upgrades.verification import verify_proxy

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ImplementationRecord:
    """A deployed implementation contract."""

    #: Contract name in the artifact store
    name: str

    address: HexAddress

    tx_hash: HexBytes

    gas_used: int = 0


@dataclass(slots=True, frozen=True)
class BeaconRecord:
    """A deployed beacon.

    Shared by all beacon proxies pointing to it.
    """

    address: HexAddress

    #: Implementation the beacon pointed to when we last looked
    implementation: HexAddress

    tx_hash: HexBytes | None = None


@dataclass(slots=True, frozen=True)
class ProxyRecord:
    """A deployed proxy.

    The address never changes. The implementation changes only through upgrades,
    and we return a new record instead of modifying an old one.
    """

    address: HexAddress

    pattern: ProxyPattern

    #: Implementation the proxy delegated to when we last looked.
    #:
    #: For beacon proxies this is the beacon implementation.
    implementation: HexAddress

    tx_hash: HexBytes | None = None

    #: Human readable name, e.g. ``TokenProxy``
    name: str | None = None


@dataclass(slots=True, frozen=True)
class ProxyDeployment:
    """Result of :py:func:`deploy_proxy`."""

    implementation: ImplementationRecord

    proxy: ProxyRecord

    #: Only for beacon proxies
    beacon: BeaconRecord | None

    #: Gas used by all deployments
    gas_used: int


def get_deployer(connector: ChainConnector, deployer: HexAddress | None = None) -> HexAddress:
    """Pick the account we deploy from.

    Defaults to the first account of the connection.

    :raise ValueError:
        ``deployer`` is not an address
    """
    if deployer:
        return normalise_address(deployer)

    accounts = connector.accounts()
    if not accounts:
        raise ChainConnectorError("No accounts available for deployment")
    return accounts[0]


def _deploy_artifact(
    connector: ChainConnector,
    artifacts: ArtifactStore,
    contract_name: str,
    constructor_args: Sequence[Any],
    deployer: HexAddress | None,
    gas: int | None,
) -> DeployedContract:
    artifact = artifacts.load_artifact(contract_name)

    try:
        from_address = get_deployer(connector, deployer)
        args = coerce_constructor_args(artifact.abi, constructor_args)
    except (ValueError, ChainConnectorError) as e:
        raise DeploymentError(contract_name, constructor_args, str(e)) from e

    try:
        logger.info("Deploying %s from %s with args %s", contract_name, from_address, args)
        deployed = connector.deploy(artifact.abi, artifact.bytecode, from_address, args, gas=gas)
    except ChainConnectorError as e:
        raise DeploymentError(contract_name, constructor_args, str(e), tx_hash=getattr(e, "tx_hash", None)) from e

    logger.info("Deployed %s at %s, tx %s, gas used %d", contract_name, deployed.address, deployed.tx_hash.hex(), deployed.gas_used)
    return deployed


def deploy_implementation(
    connector: ChainConnector,
    artifacts: ArtifactStore,
    contract_name: str,
    constructor_args: Sequence[Any] = (),
    deployer: HexAddress | None = None,
    gas: int | None = None,
) -> ImplementationRecord:
    """Deploy any compiled contract.

    Example:

    .. code-block:: python

        implementation = deploy_implementation(connector, artifacts, "TokenV2")
        print(f"New implementation at {implementation.address}")

    :param connector:
        Chain connection

    :param artifacts:
        Where to load the compiled contract from

    :param contract_name:
        Artifact name

    :param constructor_args:
        Arguments passed to the contract constructor

    :param deployer:
        Deploy from this account. Defaults to the first account of the connector.

    :param gas:
        Gas limit. If not set, estimate.

    :raise ArtifactNotFoundError:
        No compiled contract with this name

    :raise DeploymentError:
        Deployment was rejected or reverted. Not retried.
    """
    deployed = _deploy_artifact(connector, artifacts, contract_name, constructor_args, deployer, gas)
    return ImplementationRecord(
        name=contract_name,
        address=deployed.address,
        tx_hash=deployed.tx_hash,
        gas_used=deployed.gas_used,
    )


def deploy_beacon(
    connector: ChainConnector,
    artifacts: ArtifactStore,
    implementation: HexAddress,
    deployer: HexAddress | None = None,
    gas: int | None = None,
) -> tuple[BeaconRecord, int]:
    """Deploy a beacon pointing to an implementation.

    :return:
        Tuple (beacon, gas used)
    """
    logger.info("Deploying beacon for implementation %s", implementation)
    deployed = _deploy_artifact(connector, artifacts, BEACON_ARTIFACT_NAME, [implementation], deployer, gas)
    beacon = BeaconRecord(
        address=deployed.address,
        implementation=implementation,
        tx_hash=deployed.tx_hash,
    )
    return beacon, deployed.gas_used


def deploy_proxy(
    connector: ChainConnector,
    artifacts: ArtifactStore,
    contract_name: str,
    constructor_args: Sequence[Any] = (),
    pattern: str | ProxyPattern = "transparent",
    deployer: HexAddress | None = None,
    gas: int | None = None,
) -> ProxyDeployment:
    """Deploy a contract behind a proxy.

    - Build initializer payload: if the implementation has ``initialize()`` taking ``constructor_args``,
      the proxy calls it on construction

    - Deploy the implementation. ``constructor_args`` go to its constructor,
      unless they went to ``initialize()`` above

    - Numeric strings are accepted for integer arguments, e.g. ``"1000000"`` for ``uint256``

    - For beacon pattern, deploy ``UpgradeableBeacon(implementation)``
      and then ``BeaconProxy(beacon, payload)``

    - Otherwise deploy ``TransparentProxy(implementation, payload)``
      or ``UUPSProxy(implementation, payload)``

    - Check the proxy answers calls. Only logs a warning if not.

    Example:

    .. code-block:: python

        deployment = deploy_proxy(
            connector,
            artifacts,
            "Token",
            ["My token", "MTK", 18, 1_000_000],
            pattern="transparent",
        )
        print(f"Proxy at {deployment.proxy.address}, implementation at {deployment.implementation.address}")

    :param pattern:
        ``"transparent"``, ``"uups"`` or ``"beacon"``

    :raise UnsupportedPatternError:
        Before any transaction is sent

    :raise ArtifactNotFoundError:
        Implementation, beacon or proxy artifact missing

    :raise DeploymentError:
        Any of the deployments failed. Earlier deployments are not rolled back.
    """

    # Reject bad patterns before we touch the chain
    pattern_config = resolve_pattern(pattern)

    logger.info("Deploying %s with %s proxy", contract_name, pattern_config.pattern.value)

    artifact = artifacts.load_artifact(contract_name)
    try:
        payload = encode_initializer_payload(artifact.abi, constructor_args)
    except ValueError as e:
        raise DeploymentError(contract_name, constructor_args, f"Cannot encode initializer: {e}") from e

    # Initializable implementations get their arguments through the proxy only
    implementation_args = () if payload else constructor_args

    implementation = deploy_implementation(connector, artifacts, contract_name, implementation_args, deployer, gas)
    gas_used = implementation.gas_used

    beacon = None
    if pattern_config.requires_beacon:
        beacon, beacon_gas = deploy_beacon(connector, artifacts, implementation.address, deployer, gas)
        gas_used += beacon_gas
        proxy_target = beacon.address
    else:
        proxy_target = implementation.address

    deployed = _deploy_artifact(
        connector,
        artifacts,
        pattern_config.proxy_artifact_name,
        [proxy_target, payload],
        deployer,
        gas,
    )
    gas_used += deployed.gas_used

    proxy = ProxyRecord(
        address=deployed.address,
        pattern=pattern_config.pattern,
        implementation=implementation.address,
        tx_hash=deployed.tx_hash,
        name=f"{contract_name}Proxy",
    )

    logger.info("Proxy deployed at %s, pattern %s, implementation %s", proxy.address, proxy.pattern.value, proxy.implementation)

    verify_proxy(connector, artifacts, proxy.address, contract_name)

    return ProxyDeployment(
        implementation=implementation,
        proxy=proxy,
        beacon=beacon,
        gas_used=gas_used,
    )

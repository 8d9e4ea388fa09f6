"""Upgrade a live proxy to a new implementation.

The operator does not need to know the proxy pattern: we detect it.

- Transparent and UUPS proxies are upgraded by calling ``upgradeTo(address)`` on the proxy itself

- Beacon proxies are upgraded by calling ``upgradeTo(address)`` on their beacon,
  which upgrades every proxy sharing the beacon

We assume a single writer per proxy. Another party upgrading the same proxy
at the same time may make :py:attr:`UpgradeResult.old_implementation` stale.
"""

import logging
from dataclasses import dataclass
from typing import Any, Sequence

from eth_typing import HexAddress
from hexbytes import HexBytes

from eth_upgrades.abi import encode_upgrade_call, is_zero_address, normalise_address
from eth_upgrades.artifacts import ArtifactStore
from eth_upgrades.connector import ChainConnector, ChainConnectorError
from eth_upgrades.deploy import ImplementationRecord, ProxyRecord, deploy_implementation, get_deployer
from eth_upgrades.detection import detect_pattern, fetch_beacon_address, fetch_implementation
from eth_upgrades.exceptions import PatternDetectionError, UpgradeTransactionError
from eth_upgrades.patterns import OPENZEPPELIN_PROXY_DESCRIPTOR, PatternDescriptor, ProxyPattern
from eth_upgrades.validation import ImplementationRef, StorageLayoutValidator, accept_any_layout, validate_storage_layout
from eth_upgrades.verification import verify_proxy

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class UpgradeResult:
    """Result of :py:func:`upgrade_proxy`."""

    #: The proxy after the upgrade
    proxy: ProxyRecord

    #: Implementation before the upgrade, read just before sending the upgrade transaction
    old_implementation: HexAddress | None

    new_implementation: ImplementationRecord

    #: Hash of the ``upgradeTo()`` transaction
    upgrade_tx_hash: HexBytes

    #: Where ``upgradeTo()`` was sent: the proxy, or its beacon
    admin_target: HexAddress

    #: Did reading the implementation after the upgrade give the new implementation
    implementation_verified: bool


def resolve_admin_target(
    connector: ChainConnector,
    proxy_address: HexAddress,
    pattern: ProxyPattern,
    descriptor: PatternDescriptor = OPENZEPPELIN_PROXY_DESCRIPTOR,
) -> HexAddress:
    """Which contract receives the administrative upgrade call.

    :raise PatternDetectionError:
        Unknown pattern, or beacon proxy without a readable beacon
    """
    match pattern:
        case ProxyPattern.beacon:
            beacon = fetch_beacon_address(connector, proxy_address, descriptor)
            if beacon is None:
                raise PatternDetectionError(proxy_address, f"Could not read the beacon of beacon proxy {proxy_address}")
            return beacon
        case ProxyPattern.transparent | ProxyPattern.uups | ProxyPattern.transparent_or_uups:
            return proxy_address
        case ProxyPattern.unknown:
            raise PatternDetectionError(proxy_address)


def send_upgrade_transaction(
    connector: ChainConnector,
    target: HexAddress,
    new_implementation: HexAddress,
    deployer: HexAddress | None = None,
    gas: int | None = None,
    descriptor: PatternDescriptor = OPENZEPPELIN_PROXY_DESCRIPTOR,
) -> HexBytes:
    """Call ``upgradeTo(new_implementation)`` on a proxy or a beacon.

    :raise UpgradeTransactionError:
        Zero or malformed address, transport failure or revert
    """
    try:
        target = normalise_address(target)
        new_implementation = normalise_address(new_implementation)
        from_address = get_deployer(connector, deployer)
    except (ValueError, ChainConnectorError) as e:
        raise UpgradeTransactionError(target, str(e)) from e

    if is_zero_address(new_implementation):
        raise UpgradeTransactionError(target, "Refusing to upgrade to the zero address")

    data = encode_upgrade_call(descriptor.upgrade_selector, new_implementation)

    try:
        logger.info("Sending upgradeTo(%s) to %s from %s", new_implementation, target, from_address)
        tx_hash = connector.send_transaction(from_address, target, data, gas=gas)
    except ChainConnectorError as e:
        raise UpgradeTransactionError(target, str(e), tx_hash=getattr(e, "tx_hash", None)) from e

    logger.info("Upgrade transaction %s confirmed", tx_hash.hex())
    return tx_hash


def upgrade_proxy(
    connector: ChainConnector,
    artifacts: ArtifactStore,
    proxy_address: HexAddress,
    new_implementation_name: str,
    constructor_args: Sequence[Any] = (),
    validate_storage: bool = True,
    storage_validator: StorageLayoutValidator = accept_any_layout,
    deployer: HexAddress | None = None,
    gas: int | None = None,
    descriptor: PatternDescriptor = OPENZEPPELIN_PROXY_DESCRIPTOR,
) -> UpgradeResult:
    """Deploy a new implementation and point a proxy to it.

    Steps

    1. Deploy the new implementation

    2. Validate storage layout, if ``validate_storage``

    3. Detect the proxy pattern

    4. Resolve the upgrade target: the beacon for beacon proxies, otherwise the proxy

    5. Read the current implementation of the target

    6. Send ``upgradeTo(address)`` to the target

    7. Read the implementation again and compare

    Example:

    .. code-block:: python

        result = upgrade_proxy(connector, artifacts, proxy_address, "TokenV2")
        assert result.implementation_verified
        print(f"Upgraded {result.old_implementation} -> {result.new_implementation.address}")

    :param proxy_address:
        Existing proxy

    :param new_implementation_name:
        Artifact name of the new implementation

    :param constructor_args:
        Constructor arguments of the new implementation

    :param validate_storage:
        Run ``storage_validator`` before the upgrade

    :param storage_validator:
        Storage layout policy. See :py:mod:`eth_upgrades.validation`.

    :raise DeploymentError:
        New implementation could not be deployed

    :raise StorageValidationError:
        Validator rejected the upgrade. No upgrade transaction was sent.

    :raise PatternDetectionError:
        We cannot tell what kind of proxy this is. No upgrade transaction was sent.
        If ``proxy_address`` is not an address at all, raised before anything is deployed.

    :raise UpgradeTransactionError:
        The upgrade call failed
    """

    try:
        proxy_address = normalise_address(proxy_address)
    except ValueError as e:
        raise PatternDetectionError(proxy_address, f"Refusing to upgrade: {e}") from e

    logger.info("Upgrading proxy at %s to %s", proxy_address, new_implementation_name)

    new_implementation = deploy_implementation(connector, artifacts, new_implementation_name, constructor_args, deployer, gas)

    if validate_storage:
        artifact = artifacts.load_artifact(new_implementation_name)
        validate_storage_layout(
            storage_validator,
            ImplementationRef(address=proxy_address),
            ImplementationRef(address=new_implementation.address, name=new_implementation_name, abi=artifact.abi),
        )

    pattern = detect_pattern(connector, proxy_address, descriptor)
    if pattern == ProxyPattern.unknown:
        raise PatternDetectionError(proxy_address, f"Refusing to upgrade {proxy_address}: proxy pattern could not be detected")

    target = resolve_admin_target(connector, proxy_address, pattern, descriptor)

    old_implementation = fetch_implementation(connector, target, descriptor)
    logger.info("Current implementation of %s is %s", target, old_implementation)

    tx_hash = send_upgrade_transaction(
        connector,
        target,
        new_implementation.address,
        deployer=deployer,
        gas=gas,
        descriptor=descriptor,
    )

    current_implementation = fetch_implementation(connector, target, descriptor)
    verified = current_implementation is not None and current_implementation.lower() == new_implementation.address.lower()
    if not verified:
        logger.warning(
            "Implementation mismatch after upgrade of %s: expected %s, read %s",
            target,
            new_implementation.address,
            current_implementation,
        )

    verify_proxy(connector, artifacts, proxy_address, new_implementation_name)

    proxy = ProxyRecord(
        address=proxy_address,
        pattern=pattern,
        implementation=current_implementation or new_implementation.address,
    )

    return UpgradeResult(
        proxy=proxy,
        old_implementation=old_implementation,
        new_implementation=new_implementation,
        upgrade_tx_hash=tx_hash,
        admin_target=target,
        implementation_verified=verified,
    )

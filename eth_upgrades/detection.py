"""Figure out what kind of proxy sits at an address.

We probe the address with read-only calls using fixed selectors:

1. ``implementation()`` - answered by transparent and UUPS proxies

2. ``getBeacon()`` - answered by beacon proxies

.. warning ::

    Transparent and UUPS proxies expose the same introspection function
    and cannot be told apart by probing.
    Both are reported as :py:attr:`ProxyPattern.transparent_or_uups`.

A reverted probe means "no answer", so probing a plain account or a non-proxy contract
gives :py:attr:`ProxyPattern.unknown`. Transport failures are raised.

Addresses can be given lowercased, they are checksummed before use.
A string that is not an address raises :py:class:`ValueError`.
"""

import logging
from dataclasses import dataclass

from eth_typing import HexAddress

from eth_upgrades.abi import normalise_address
from eth_upgrades.connector import ChainCallFailed, ChainConnector
from eth_upgrades.exceptions import PatternDetectionError
from eth_upgrades.patterns import OPENZEPPELIN_PROXY_DESCRIPTOR, PatternDescriptor, ProxyPattern

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ProxyInfo:
    """What we can read about a live proxy."""

    address: HexAddress

    pattern: ProxyPattern

    #: The implementation calls are delegated to
    implementation: HexAddress | None

    #: Set for beacon proxies
    beacon: HexAddress | None = None


def probe_address(
    connector: ChainConnector,
    address: HexAddress,
    selector: bytes,
    descriptor: PatternDescriptor = OPENZEPPELIN_PROXY_DESCRIPTOR,
) -> HexAddress | None:
    """Make a read-only call and interpret the result as an address.

    :return:
        Address, or ``None`` if the call reverted or did not return an address
    """
    address = normalise_address(address)
    try:
        data = connector.call(address, selector)
    except ChainCallFailed as e:
        logger.debug("Probe %s on %s reverted: %s", selector.hex(), address, e)
        return None

    result = descriptor.extract_address(data)
    logger.debug("Probe %s on %s returned %s", selector.hex(), address, result)
    return result


def fetch_implementation(
    connector: ChainConnector,
    address: HexAddress,
    descriptor: PatternDescriptor = OPENZEPPELIN_PROXY_DESCRIPTOR,
) -> HexAddress | None:
    """Read ``implementation()`` of a proxy or a beacon."""
    return probe_address(connector, address, descriptor.implementation_selector, descriptor)


def fetch_beacon_address(
    connector: ChainConnector,
    proxy_address: HexAddress,
    descriptor: PatternDescriptor = OPENZEPPELIN_PROXY_DESCRIPTOR,
) -> HexAddress | None:
    """Read ``getBeacon()`` of a beacon proxy."""
    return probe_address(connector, proxy_address, descriptor.beacon_selector, descriptor)


def detect_pattern(
    connector: ChainConnector,
    proxy_address: HexAddress,
    descriptor: PatternDescriptor = OPENZEPPELIN_PROXY_DESCRIPTOR,
) -> ProxyPattern:
    """Classify a proxy.

    Makes no writes and gives the same answer when called repeatedly.

    Example:

    .. code-block:: python

        pattern = detect_pattern(connector, "0x...")
        if pattern == ProxyPattern.unknown:
            raise PatternDetectionError(address)

    :return:
        :py:attr:`ProxyPattern.transparent_or_uups`,
        :py:attr:`ProxyPattern.beacon` or
        :py:attr:`ProxyPattern.unknown`.
        Callers must treat unknown as a failure.
    """
    proxy_address = normalise_address(proxy_address)
    if fetch_implementation(connector, proxy_address, descriptor):
        pattern = ProxyPattern.transparent_or_uups
    elif fetch_beacon_address(connector, proxy_address, descriptor):
        pattern = ProxyPattern.beacon
    else:
        pattern = ProxyPattern.unknown

    logger.info("Detected proxy pattern at %s: %s", proxy_address, pattern.value)
    return pattern


def fetch_proxy_info(
    connector: ChainConnector,
    proxy_address: HexAddress,
    descriptor: PatternDescriptor = OPENZEPPELIN_PROXY_DESCRIPTOR,
) -> ProxyInfo:
    """Read the pattern and the effective implementation of a proxy.

    For beacon proxies the implementation is read from the beacon.

    :raise PatternDetectionError:
        If the address does not look like a proxy
    """
    proxy_address = normalise_address(proxy_address)
    pattern = detect_pattern(connector, proxy_address, descriptor)

    match pattern:
        case ProxyPattern.beacon:
            beacon = fetch_beacon_address(connector, proxy_address, descriptor)
            implementation = fetch_implementation(connector, beacon, descriptor)
        case ProxyPattern.transparent | ProxyPattern.uups | ProxyPattern.transparent_or_uups:
            beacon = None
            implementation = fetch_implementation(connector, proxy_address, descriptor)
        case ProxyPattern.unknown:
            raise PatternDetectionError(proxy_address)

    return ProxyInfo(
        address=proxy_address,
        pattern=pattern,
        implementation=implementation,
        beacon=beacon,
    )

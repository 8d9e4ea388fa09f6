"""Supported proxy patterns.

- Map a pattern identifier to the proxy artifact we deploy for it

- Fixed selectors used to probe and administrate proxies

We follow `OpenZeppelin proxy conventions <https://docs.openzeppelin.com/contracts/5.x/api/proxy>`__.
"""

import enum
from dataclasses import dataclass

from eth_typing import HexAddress
from web3 import Web3

from eth_upgrades.abi import decode_address_word
from eth_upgrades.exceptions import UnsupportedPatternError


class ProxyPattern(enum.Enum):
    """Proxy patterns we know about."""

    #: OpenZeppelin TransparentUpgradeableProxy like proxy
    transparent = "transparent"

    #: ERC-1822 universal upgradeable proxy, upgrade logic lives in the implementation
    uups = "uups"

    #: Proxy reads its implementation from a shared beacon contract
    beacon = "beacon"

    #: Detection result for a proxy exposing ``implementation()``.
    #:
    #: Transparent and UUPS proxies answer the same introspection call,
    #: so we cannot tell them apart by probing. No further disambiguation
    #: (e.g. reading the admin slot) is attempted.
    transparent_or_uups = "transparent_or_uups"

    #: Could not classify. Never an operating state.
    unknown = "unknown"

    def is_address_exposing(self) -> bool:
        """Does the proxy itself answer ``implementation()`` and ``upgradeTo()``."""
        match self:
            case ProxyPattern.transparent | ProxyPattern.uups | ProxyPattern.transparent_or_uups:
                return True
            case ProxyPattern.beacon | ProxyPattern.unknown:
                return False


@dataclass(slots=True, frozen=True)
class ProxyPatternConfig:
    """How to deploy a proxy of a certain pattern."""

    pattern: ProxyPattern

    #: Artifact name of the proxy contract
    proxy_artifact_name: str

    #: Do we need to deploy a beacon before the proxy
    requires_beacon: bool


@dataclass(slots=True, frozen=True)
class PatternDescriptor:
    """Fixed byte selectors we use to talk to proxies without a full ABI.

    These must match the deployed proxy bytecode exactly.
    A mismatch cannot be detected: probes just return nothing.
    """

    #: ``implementation()`` on a proxy or a beacon
    implementation_selector: bytes

    #: ``getBeacon()`` on a beacon proxy
    beacon_selector: bytes

    #: ``upgradeTo(address)`` on a proxy or a beacon
    upgrade_selector: bytes

    def extract_address(self, data: bytes) -> HexAddress | None:
        """Get an address out of a probe response.

        :return:
            Checksummed address or ``None`` if the response is not a usable address word
        """
        return decode_address_word(data)


#: Selectors for OpenZeppelin style proxies
OPENZEPPELIN_PROXY_DESCRIPTOR = PatternDescriptor(
    implementation_selector=Web3.keccak(text="implementation()")[0:4],
    beacon_selector=Web3.keccak(text="getBeacon()")[0:4],
    upgrade_selector=Web3.keccak(text="upgradeTo(address)")[0:4],
)

#: Artifact name of the beacon contract deployed for beacon proxies.
#:
#: Constructor is ``(address implementation)``.
BEACON_ARTIFACT_NAME = "UpgradeableBeacon"

#: Pattern -> how to deploy it.
#:
#: Proxy constructors are ``(address implementation, bytes data)``,
#: or ``(address beacon, bytes data)`` for the beacon proxy.
PROXY_PATTERNS: dict[ProxyPattern, ProxyPatternConfig] = {
    ProxyPattern.transparent: ProxyPatternConfig(ProxyPattern.transparent, "TransparentProxy", requires_beacon=False),
    ProxyPattern.uups: ProxyPatternConfig(ProxyPattern.uups, "UUPSProxy", requires_beacon=False),
    ProxyPattern.beacon: ProxyPatternConfig(ProxyPattern.beacon, "BeaconProxy", requires_beacon=True),
}


def resolve_pattern(pattern: str | ProxyPattern) -> ProxyPatternConfig:
    """Look up how to deploy a proxy pattern.

    Example:

    .. code-block:: python

        config = resolve_pattern("beacon")
        assert config.proxy_artifact_name == "BeaconProxy"
        assert config.requires_beacon

    :param pattern:
        One of ``"transparent"``, ``"uups"``, ``"beacon"``.

    :raise UnsupportedPatternError:
        Any other value, including detection only values like ``unknown``.
    """
    if isinstance(pattern, ProxyPattern):
        resolved = pattern
    elif isinstance(pattern, str):
        try:
            resolved = ProxyPattern(pattern)
        except ValueError as e:
            raise UnsupportedPatternError(pattern) from e
    else:
        raise UnsupportedPatternError(pattern)

    config = PROXY_PATTERNS.get(resolved)
    if config is None:
        raise UnsupportedPatternError(pattern)
    return config

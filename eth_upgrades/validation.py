"""Storage layout compatibility checks before upgrades.

A storage layout validator is a plain function ``(old, new) -> bool``.
The upgrade flow calls it before any upgrade transaction is sent,
so a real structural diff of storage layouts can be plugged in
without touching :py:func:`eth_upgrades.upgrade.upgrade_proxy`.

The default validator :py:func:`accept_any_layout` accepts everything.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from eth_typing import HexAddress

from eth_upgrades.exceptions import StorageValidationError

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ImplementationRef:
    """What the validator knows about one side of an upgrade."""

    #: Address of the contract.
    #:
    #: For the old side this is the proxy address,
    #: as the proxy storage is what the new implementation must be compatible with.
    address: HexAddress

    #: Contract name, if known
    name: str | None = None

    #: Contract ABI, if known
    abi: list[dict] | None = field(default=None, repr=False)


#: ``(old, new) -> compatible``
StorageLayoutValidator = Callable[[ImplementationRef, ImplementationRef], bool]


def accept_any_layout(old: ImplementationRef, new: ImplementationRef) -> bool:
    """Storage layout validator that accepts any pair."""
    return True


def validate_storage_layout(
    validator: StorageLayoutValidator,
    old: ImplementationRef,
    new: ImplementationRef,
):
    """Run a storage layout validator.

    :raise StorageValidationError:
        The validator returned false, or raised the error itself
    """
    logger.info("Validating storage layout compatibility of %s against %s", new.address, old.address)

    if not validator(old, new):
        raise StorageValidationError(old.address, new.address)

    logger.info("Storage layout validation passed")

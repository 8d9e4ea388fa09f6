"""eth_upgrades package root.

Deploy and upgrade proxied smart contracts using transparent, UUPS and beacon proxy patterns.

- :py:mod:`eth_upgrades.deploy` for deploying implementation and proxy contracts

- :py:mod:`eth_upgrades.upgrade` for upgrading an existing proxy

- :py:mod:`eth_upgrades.detection` for figuring out what kind of proxy sits at an address
"""

import sys


#: Minimum required Python version to run this package
MIN_PYTHON_VERSION = (3, 10)


def _check_python_version():
    """Try early abort if the Python version is too old."""

    # Use Python tuple comparison for version numbers
    if sys.version_info < MIN_PYTHON_VERSION:
        raise RuntimeError(f"eth_upgrades needs Python {MIN_PYTHON_VERSION[0]}.{MIN_PYTHON_VERSION[1]} or later")


_check_python_version()

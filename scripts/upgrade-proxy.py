"""Upgrade an existing proxy to a new implementation.

The proxy pattern is detected from the chain.

To run:

.. code-block:: shell

    export JSON_RPC_URL=http://127.0.0.1:8545
    export PRIVATE_KEY=0x...
    export PROXY_ADDRESS=0x...
    export CONTRACT_NAME=TokenV2
    python scripts/upgrade-proxy.py
"""

import json
import logging
import os

from eth_upgrades.abi import normalise_address
from eth_upgrades.config import DeploymentConfig
from eth_upgrades.detection import fetch_proxy_info
from eth_upgrades.upgrade import upgrade_proxy
from eth_upgrades.utils import get_url_domain, setup_console_logging

logger = logging.getLogger(__name__)


def main():
    setup_console_logging()

    config = DeploymentConfig.from_env()
    proxy_address = normalise_address(os.environ["PROXY_ADDRESS"])
    contract_name = os.environ["CONTRACT_NAME"]
    constructor_args = json.loads(os.environ.get("CONSTRUCTOR_ARGS", "[]"))

    logger.info("Connecting to %s", get_url_domain(config.json_rpc_url))
    connector = config.create_connector()
    artifacts = config.create_artifact_store()

    info = fetch_proxy_info(connector, proxy_address)
    print(f"Proxy pattern: {info.pattern.value}")
    print(f"Current implementation: {info.implementation}")

    result = upgrade_proxy(
        connector,
        artifacts,
        proxy_address,
        contract_name,
        constructor_args,
        validate_storage=config.validate_storage,
        gas=config.gas_limit,
    )

    print(f"Upgraded {result.admin_target}: {result.old_implementation} -> {result.new_implementation.address}")
    print(f"Upgrade transaction: {result.upgrade_tx_hash.hex()}")
    if not result.implementation_verified:
        print(f"Warning: implementation read after the upgrade is {result.proxy.implementation}")


if __name__ == "__main__":
    main()

"""Deploy a contract behind a proxy.

To run:

.. code-block:: shell

    export JSON_RPC_URL=http://127.0.0.1:8545
    export ARTIFACTS_PATH=build
    export CONTRACT_NAME=Token
    export CONSTRUCTOR_ARGS='["My token", "MTK", 18, "1000000000000000000000000"]'
    export PATTERN=transparent
    python scripts/deploy-proxy.py
"""

import json
import logging
import os

from eth_upgrades.config import DeploymentConfig
from eth_upgrades.deploy import deploy_proxy
from eth_upgrades.detection import detect_pattern
from eth_upgrades.utils import get_url_domain, setup_console_logging

logger = logging.getLogger(__name__)


def main():
    setup_console_logging()

    config = DeploymentConfig.from_env()
    contract_name = os.environ["CONTRACT_NAME"]
    constructor_args = json.loads(os.environ.get("CONSTRUCTOR_ARGS", "[]"))
    pattern = os.environ.get("PATTERN", "transparent")

    assert type(constructor_args) == list, f"CONSTRUCTOR_ARGS must be a JSON list, got {constructor_args}"

    logger.info("Connecting to %s", get_url_domain(config.json_rpc_url))
    connector = config.create_connector()
    artifacts = config.create_artifact_store()

    deployment = deploy_proxy(
        connector,
        artifacts,
        contract_name,
        constructor_args,
        pattern=pattern,
        gas=config.gas_limit,
    )

    print(f"Implementation: {deployment.implementation.address}")
    if deployment.beacon:
        print(f"Beacon: {deployment.beacon.address}")
    print(f"Proxy: {deployment.proxy.address}")
    print(f"Detected pattern: {detect_pattern(connector, deployment.proxy.address).value}")
    print(f"Total gas used: {deployment.gas_used:,}")


if __name__ == "__main__":
    main()

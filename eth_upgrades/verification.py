"""Best-effort check that a proxy answers calls after a deployment or an upgrade.

The proxy is already live on the chain when we get here,
so a failing check only produces a warning for the operator.
"""

import logging

from eth_typing import HexAddress
from eth_utils import function_abi_to_4byte_selector

from eth_upgrades.artifacts import ArtifactStore
from eth_upgrades.connector import ChainConnector

logger = logging.getLogger(__name__)


def find_probe_function(abi: list[dict]) -> dict | None:
    """Pick an argument-less view function we can call to see the contract responds."""
    for entry in abi:
        if entry.get("type") != "function":
            continue
        if entry.get("inputs"):
            continue
        if entry.get("stateMutability") in ("view", "pure") or entry.get("constant"):
            return entry
    return None


def verify_proxy(
    connector: ChainConnector,
    artifacts: ArtifactStore,
    proxy_address: HexAddress,
    contract_name: str,
) -> bool:
    """Try a trivial read through a proxy, assuming it exposes ``contract_name`` interface.

    Never raises.

    :return:
        True if the read succeeded, or there was nothing to read
    """
    try:
        artifact = artifacts.load_artifact(contract_name)
        fn_abi = find_probe_function(artifact.abi)
        if fn_abi is None:
            logger.info("%s has no argument-less view functions, skipping proxy verification", contract_name)
            return True

        data = connector.call(proxy_address, function_abi_to_4byte_selector(fn_abi))
        if not data:
            logger.warning("Proxy %s returned empty data for %s.%s()", proxy_address, contract_name, fn_abi["name"])
            return False

        logger.info("Proxy %s answered %s.%s()", proxy_address, contract_name, fn_abi["name"])
        return True
    except Exception as e:
        logger.warning("Proxy verification failed for %s at %s: %s", contract_name, proxy_address, e)
        return False

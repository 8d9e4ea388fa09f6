"""Chain connection used to deploy contracts and make calls.

All deployment and upgrade functions take a :py:class:`ChainConnector` as their first argument.
There is no global connection state.

- :py:class:`Web3ChainConnector` is the implementation backed by Web3.py

- Any other object implementing :py:class:`ChainConnector` protocol works too,
  e.g. a simulated chain in unit tests
"""

import logging
from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import requests
from eth_account import Account
from eth_account.signers.local import LocalAccount
from eth_typing import HexAddress
from hexbytes import HexBytes
from web3 import HTTPProvider, Web3
from web3.exceptions import ContractLogicError, Web3Exception, Web3RPCError

from eth_upgrades.abi import normalise_address

logger = logging.getLogger(__name__)


#: Errors raised by the node or Web3.py when a transaction is rejected before or after broadcast
_WRITE_ERRORS = (Web3Exception, ValueError, requests.exceptions.RequestException)

#: Errors meaning "the call executed but did not give us a result"
_CALL_ERRORS = (ContractLogicError, Web3RPCError, ValueError)


class ChainConnectorError(Exception):
    """Talking to the chain failed."""


class ChainCallFailed(ChainConnectorError):
    """Read-only call reverted or the node refused to execute it."""


class ChainTransactionFailed(ChainConnectorError):
    """A transaction or a deployment did not succeed.

    :py:attr:`tx_hash` is set if the transaction made it to a block.
    """

    def __init__(self, tx_hash: HexBytes | None, msg: str):
        super().__init__(msg)
        self.tx_hash = tx_hash


@dataclass(slots=True, frozen=True)
class DeployedContract:
    """Outcome of a successful contract deployment."""

    address: HexAddress
    tx_hash: HexBytes
    gas_used: int


class ChainConnector(Protocol):
    """What we need from a blockchain connection."""

    def accounts(self) -> list[HexAddress]:
        """Accounts we can send transactions from."""

    def deploy(
        self,
        abi: list[dict],
        bytecode: str,
        from_address: HexAddress,
        args: Sequence[Any],
        gas: int | None = None,
    ) -> DeployedContract:
        """Deploy a contract and wait until it is mined.

        :raise ChainTransactionFailed:
            Deployment rejected or reverted
        """

    def call(self, to: HexAddress, data: bytes) -> bytes:
        """Read-only ``eth_call``.

        :return:
            Raw return data. Empty for addresses without code.

        :raise ChainCallFailed:
            Call reverted
        """

    def send_transaction(
        self,
        from_address: HexAddress,
        to: HexAddress,
        data: bytes,
        gas: int | None = None,
    ) -> HexBytes:
        """Send a transaction and wait until it is mined.

        :return:
            Transaction hash

        :raise ChainTransactionFailed:
            Transaction rejected or reverted
        """


class Web3ChainConnector:
    """Chain connector over a Web3.py connection.

    - If ``account`` is given, transactions are signed locally with its private key

    - Otherwise transactions are sent from node managed accounts using ``eth_sendTransaction``,
      e.g. with Anvil or Ethereum Tester

    - Addresses are checksummed before they are given to Web3.py,
      so lowercased addresses work

    Example:

    .. code-block:: python

        connector = Web3ChainConnector.connect("http://127.0.0.1:8545")
        deployment = deploy_proxy(connector, artifacts, "Token", ["My token", "MTK"], "transparent")
    """

    def __init__(self, web3: Web3, account: LocalAccount | None = None):
        assert isinstance(web3, Web3), f"Got {type(web3)} instead of Web3"
        self.web3 = web3
        self.account = account

    def __repr__(self):
        return f"<Web3ChainConnector {self.web3.provider} account:{self.account.address if self.account else 'node'}>"

    @staticmethod
    def connect(json_rpc_url: str, private_key: str | None = None) -> "Web3ChainConnector":
        """Create a connector for a JSON-RPC endpoint.

        :param json_rpc_url:
            Node HTTP URL

        :param private_key:
            0x prefixed hex private key. If not given use node managed accounts.

        :raise ChainConnectorError:
            If there are no accounts to deploy from
        """
        web3 = Web3(HTTPProvider(json_rpc_url))

        account = None
        if private_key:
            assert private_key.startswith("0x"), f"This system assumes private keys are prefixed with 0x, your key starts with {private_key[0:4]}..."
            account = Account.from_key(private_key)

        connector = Web3ChainConnector(web3, account)
        try:
            accounts = connector.accounts()
        except requests.exceptions.RequestException as e:
            raise ChainConnectorError(f"Connection to {json_rpc_url} failed: {e}") from e

        if len(accounts) == 0:
            raise ChainConnectorError(f"No accounts available for deployment at {json_rpc_url}")

        logger.info("Connected to chain %d, deployer account %s", web3.eth.chain_id, accounts[0])
        return connector

    def accounts(self) -> list[HexAddress]:
        if self.account is not None:
            return [self.account.address]
        return list(self.web3.eth.accounts)

    def _sign_and_broadcast(self, tx: dict) -> HexBytes:
        assert self.account is not None
        tx["nonce"] = self.web3.eth.get_transaction_count(self.account.address)
        tx["chainId"] = self.web3.eth.chain_id
        signed = self.account.sign_transaction(tx)
        return self.web3.eth.send_raw_transaction(signed.raw_transaction)

    def _wait_for_success(self, tx_hash: HexBytes, description: str) -> dict:
        receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash)
        if receipt["status"] != 1:
            raise ChainTransactionFailed(tx_hash, f"{description} reverted, tx hash is {tx_hash.hex()}")
        return receipt

    def deploy(
        self,
        abi: list[dict],
        bytecode: str,
        from_address: HexAddress,
        args: Sequence[Any],
        gas: int | None = None,
    ) -> DeployedContract:
        from_address = normalise_address(from_address)
        Contract = self.web3.eth.contract(abi=abi, bytecode=bytecode)

        tx_params = {"from": from_address}
        if gas:
            tx_params["gas"] = gas

        try:
            constructor = Contract.constructor(*args)
            if self.account is not None:
                assert from_address == self.account.address, f"Can only sign for {self.account.address}, got {from_address}"
                tx_data = constructor.build_transaction(tx_params)
                tx_hash = self._sign_and_broadcast(tx_data)
            else:
                # Delegate to test RPC
                tx_hash = constructor.transact(tx_params)
        except _WRITE_ERRORS as e:
            raise ChainTransactionFailed(None, f"Deployment transaction rejected: {e}") from e

        try:
            receipt = self._wait_for_success(tx_hash, "Deployment")
        except _WRITE_ERRORS as e:
            raise ChainTransactionFailed(tx_hash, f"Could not confirm deployment {tx_hash.hex()}: {e}") from e

        return DeployedContract(
            address=receipt["contractAddress"],
            tx_hash=HexBytes(tx_hash),
            gas_used=receipt["gasUsed"],
        )

    def call(self, to: HexAddress, data: bytes) -> bytes:
        to = normalise_address(to)
        try:
            return bytes(self.web3.eth.call({"to": to, "data": HexBytes(data)}))
        except _CALL_ERRORS as e:
            raise ChainCallFailed(f"Call to {to} with data {HexBytes(data).hex()} failed: {e}") from e
        except requests.exceptions.RequestException as e:
            raise ChainConnectorError(f"Transport failure when calling {to}: {e}") from e

    def send_transaction(
        self,
        from_address: HexAddress,
        to: HexAddress,
        data: bytes,
        gas: int | None = None,
    ) -> HexBytes:
        from_address = normalise_address(from_address)
        to = normalise_address(to)
        tx = {
            "from": from_address,
            "to": to,
            "data": HexBytes(data),
        }

        try:
            if gas:
                tx["gas"] = gas
            else:
                tx["gas"] = self.web3.eth.estimate_gas(tx)

            if self.account is not None:
                assert from_address == self.account.address, f"Can only sign for {self.account.address}, got {from_address}"
                tx["gasPrice"] = self.web3.eth.gas_price
                tx_hash = self._sign_and_broadcast(tx)
            else:
                tx_hash = self.web3.eth.send_transaction(tx)
        except _WRITE_ERRORS as e:
            raise ChainTransactionFailed(None, f"Transaction to {to} rejected: {e}") from e

        try:
            self._wait_for_success(tx_hash, f"Transaction to {to}")
        except _WRITE_ERRORS as e:
            raise ChainTransactionFailed(tx_hash, f"Could not confirm transaction {tx_hash.hex()}: {e}") from e

        return HexBytes(tx_hash)

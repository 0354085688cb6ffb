"""
Chain client - submits mint transactions to an EVM chain and watches them.
"""
import logging
import time
from typing import Any, Dict, Optional, Protocol, Union

import requests
from eth_account.messages import encode_defunct
from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound, Web3Exception

from .cancel import CancelToken
from .config import NetworkConfig, validate_service_url
from .exceptions import Cancelled, InsufficientFunds, InvalidInput, NetworkError, TransactionError
from .models import ConfirmationOutcome, ConfirmationStatus, MintRequest

DEFAULT_MINT_GAS = 400000
GAS_BUFFER = 1.1

# Fragments of RPC error messages that mean the sender cannot pay
_INSUFFICIENT_FUNDS_MARKERS = ("insufficient funds", "insufficient balance")


class ChainClient(Protocol):
    """Interface the orchestrator consumes"""

    def submit(self, request: MintRequest) -> str:
        ...

    def await_confirmation(
        self,
        signature: str,
        timeout: float = 60.0,
        poll_interval: float = 2.0,
        cancel: Optional[CancelToken] = None,
    ) -> ConfirmationOutcome:
        ...

    def account_balance(self, address: str) -> int:
        ...

    def estimate_mint_cost(self, request: MintRequest) -> int:
        ...


def normalize_signature(tx_hash: Union[bytes, str]) -> str:
    """Transaction hash as a 0x-prefixed lowercase hex string"""
    if isinstance(tx_hash, (bytes, bytearray)):
        return "0x" + bytes(tx_hash).hex()
    tx_hash = str(tx_hash).lower()
    return tx_hash if tx_hash.startswith("0x") else "0x" + tx_hash


class Web3ChainClient:
    """
    Chain client for the mint factory contract on an EVM network.

    The factory creates a token whose identity is the address of a freshly
    generated mint key. The mint key proves possession by signing the
    (factory, chain id, authority, metadata URI) tuple; the authority signs
    and pays for the transaction.
    """

    MINT_FACTORY_ABI = [
        {
            "inputs": [
                {"internalType": "address", "name": "mint", "type": "address"},
                {"internalType": "bytes", "name": "mintSignature", "type": "bytes"},
                {"internalType": "string", "name": "name", "type": "string"},
                {"internalType": "string", "name": "uri", "type": "string"},
                {"internalType": "uint96", "name": "sellerFeeBasisPoints", "type": "uint96"},
                {"internalType": "bool", "name": "isCollection", "type": "bool"}
            ],
            "name": "createMint",
            "outputs": [],
            "stateMutability": "nonpayable",
            "type": "function"
        },
        {
            "anonymous": False,
            "inputs": [
                {"indexed": True, "internalType": "address", "name": "mint", "type": "address"},
                {"indexed": True, "internalType": "address", "name": "authority", "type": "address"},
                {"indexed": False, "internalType": "string", "name": "uri", "type": "string"}
            ],
            "name": "MintCreated",
            "type": "event"
        }
    ]

    def __init__(
        self,
        rpc_url: str,
        mint_factory_address: str,
        expected_chain_id: Optional[int] = None,
        explorer_url: Optional[str] = None,
        default_gas: int = DEFAULT_MINT_GAS,
        min_confirmations: int = 1,
        timeout: int = 30,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the chain client

        Args:
            rpc_url: RPC endpoint URL
            mint_factory_address: Address of the mint factory contract
            expected_chain_id: Chain ID the RPC endpoint must report
            explorer_url: Block explorer base URL for tx_url/address_url
            default_gas: Gas limit used when estimation fails
            min_confirmations: Blocks (including the inclusion block) before a receipt counts
            timeout: Timeout for RPC requests in seconds
            logger: Optional logger instance

        Raises:
            ValueError: If the RPC URL is insecure or the factory address is invalid
        """
        self.rpc_url = validate_service_url("rpc_url", rpc_url)
        if not Web3.is_address(mint_factory_address):
            raise ValueError(f"Invalid mint factory address: {mint_factory_address}")
        if min_confirmations < 1:
            raise ValueError("min_confirmations must be at least 1")

        self.mint_factory_address = Web3.to_checksum_address(mint_factory_address)
        self.expected_chain_id = expected_chain_id
        self.explorer_url = (explorer_url or "").rstrip("/")
        self.default_gas = default_gas
        self.min_confirmations = min_confirmations
        self.logger = logger or logging.getLogger(__name__)
        self._network_name: Optional[str] = None

        self.w3 = Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": timeout}))
        self.contract = self.w3.eth.contract(
            address=self.mint_factory_address,
            abi=self.MINT_FACTORY_ABI
        )

    @classmethod
    def from_network(
        cls,
        network: str,
        rpc_url: Optional[str] = None,
        **kwargs: Any
    ) -> "Web3ChainClient":
        """
        Build a client from the bundled network configuration

        Raises:
            ValueError: If the network is unknown
        """
        client = cls(
            rpc_url=NetworkConfig.get_rpc_url(network, override=rpc_url),
            mint_factory_address=NetworkConfig.get_mint_factory_address(network),
            expected_chain_id=NetworkConfig.get_chain_id(network),
            explorer_url=NetworkConfig.get_explorer_url(network),
            **kwargs
        )
        client._network_name = network
        return client

    def assert_chain_id(self) -> None:
        """
        Verify the RPC endpoint serves the expected chain

        Raises:
            NetworkError: If the chain ID differs or cannot be read
        """
        if self.expected_chain_id is None:
            self.logger.warning("No expected chain ID set, skipping chain validation")
            return
        try:
            actual = self.w3.eth.chain_id
        except Exception as e:
            raise NetworkError(f"Failed to validate chain ID: {e}")
        if actual != self.expected_chain_id:
            network = f" for network {self._network_name}" if self._network_name else ""
            raise NetworkError(
                f"Chain ID mismatch{network}: expected {self.expected_chain_id}, got {actual}"
            )

    def account_balance(self, address: str) -> int:
        """
        Balance of an address in wei

        Raises:
            NetworkError: If the RPC endpoint could not be reached
        """
        try:
            return int(self.w3.eth.get_balance(Web3.to_checksum_address(address)))
        except requests.RequestException as e:
            raise NetworkError(f"Failed to fetch balance: {e}")

    def mint_signature(self, request: MintRequest, chain_id: int) -> bytes:
        """Signature by the mint key binding it to this factory, chain, authority and URI"""
        digest = Web3.solidity_keccak(
            ["address", "uint256", "address", "string"],
            [self.mint_factory_address, chain_id, request.authority.address, request.metadata_uri]
        )
        signed = request.mint_account.sign_message(encode_defunct(primitive=digest))
        return bytes(signed.signature)

    def _mint_call(self, request: MintRequest, chain_id: int):
        return self.contract.functions.createMint(
            request.mint_address,
            self.mint_signature(request, chain_id),
            request.name,
            request.metadata_uri,
            request.seller_fee_basis_points,
            request.is_collection,
        )

    def _estimate_gas(self, call: Any, from_address: str) -> int:
        try:
            gas = call.estimate_gas({'from': from_address})
            gas = int(gas * GAS_BUFFER)
            self.logger.debug(f"Estimated gas: {gas}")
            return gas
        except ContractLogicError as e:
            raise TransactionError(f"Mint would revert: {e}")
        except Exception as e:
            self.logger.warning(f"Gas estimation failed, using default: {self.default_gas}. Error: {e}")
            return self.default_gas

    def estimate_mint_cost(self, request: MintRequest) -> int:
        """
        Upper bound of the fee in wei for submitting a request

        Raises:
            NetworkError: If the RPC endpoint could not be reached
            TransactionError: If the call would revert
        """
        try:
            chain_id = self.w3.eth.chain_id
            gas = self._estimate_gas(self._mint_call(request, chain_id), request.authority.address)
            return gas * int(self.w3.eth.gas_price)
        except requests.RequestException as e:
            raise NetworkError(f"Failed to estimate mint cost: {e}")

    def submit(self, request: MintRequest) -> str:
        """
        Sign and send a mint transaction

        Args:
            request: Mint request carrying the mint key and authority signer

        Returns:
            Transaction hash (0x-prefixed hex)

        Raises:
            InvalidInput: If the request has no usable authority
            NetworkError: If the RPC endpoint could not be reached
            TransactionError: If building, signing or sending failed
        """
        authority = request.authority
        if authority is None or not getattr(authority, "address", None):
            raise InvalidInput("Mint request has no authority signer")

        try:
            from_address = authority.address
            chain_id = self.w3.eth.chain_id
            call = self._mint_call(request, chain_id)
            nonce = self.w3.eth.get_transaction_count(from_address, "pending")
            gas = self._estimate_gas(call, from_address)

            tx_params: Dict[str, Any] = {
                'from': from_address,
                'nonce': nonce,
                'gas': gas,
                'gasPrice': self.w3.eth.gas_price,
                'chainId': chain_id,
            }
            tx = call.build_transaction(tx_params)
        except requests.RequestException as e:
            self.logger.error(f"RPC request failed while preparing mint: {e}")
            raise NetworkError(f"RPC request failed: {e}")
        except TransactionError:
            raise
        except (Web3Exception, ValueError) as e:
            self.logger.error(f"Failed to build mint transaction: {e}")
            raise TransactionError(f"Failed to build transaction: {e}")

        try:
            signed_tx = authority.sign_transaction(tx)
        except Exception as e:
            self.logger.error(f"Transaction signing failed: {e}")
            raise TransactionError(f"Failed to sign transaction: {e}")

        try:
            tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except requests.RequestException as e:
            self.logger.error(f"Failed to send transaction: {e}")
            raise NetworkError(f"Failed to send transaction: {e}")
        except (Web3Exception, ValueError) as e:
            self.logger.error(f"Failed to send transaction: {e}")
            if self.is_insufficient_funds(e):
                raise InsufficientFunds(from_address)
            raise TransactionError(f"Failed to send transaction: {e}")

        signature = normalize_signature(tx_hash)
        self.logger.info(f"Mint transaction sent: {signature} (mint {request.mint_address})")
        return signature

    @staticmethod
    def is_insufficient_funds(error: Exception) -> bool:
        message = str(error).lower()
        return any(marker in message for marker in _INSUFFICIENT_FUNDS_MARKERS)

    def _confirmations(self, block_number: int) -> int:
        if self.min_confirmations == 1:
            return 1
        return int(self.w3.eth.block_number) - block_number + 1

    def await_confirmation(
        self,
        signature: str,
        timeout: float = 60.0,
        poll_interval: float = 2.0,
        cancel: Optional[CancelToken] = None,
        max_poll_interval: float = 5.0,
        backoff: float = 1.5,
    ) -> ConfirmationOutcome:
        """
        Poll for the transaction receipt until confirmed, reverted or timed out.

        RPC failures while polling are logged and polling continues.

        Raises:
            Cancelled: If the token is cancelled; the transaction may still land
        """
        deadline = time.monotonic() + timeout
        interval = poll_interval

        while True:
            if cancel is not None:
                cancel.raise_if_cancelled("confirmation poll")
            try:
                receipt = self.w3.eth.get_transaction_receipt(signature)
            except TransactionNotFound:
                receipt = None
            except requests.RequestException as e:
                self.logger.warning(f"Receipt poll for {signature} failed: {e}")
                receipt = None

            if receipt is not None:
                block_number = receipt.get("blockNumber")
                if receipt.get("status") == 0:
                    self.logger.error(f"Transaction {signature} reverted in block {block_number}")
                    return ConfirmationOutcome(
                        status=ConfirmationStatus.REJECTED,
                        signature=signature,
                        block_number=block_number,
                    )
                try:
                    confirmed = self._confirmations(block_number) >= self.min_confirmations
                except requests.RequestException as e:
                    self.logger.warning(f"Block number poll failed: {e}")
                    confirmed = False
                if confirmed:
                    self.logger.info(f"Transaction {signature} confirmed in block {block_number}")
                    return ConfirmationOutcome(
                        status=ConfirmationStatus.CONFIRMED,
                        signature=signature,
                        block_number=block_number,
                    )

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self.logger.warning(f"Transaction {signature} not confirmed after {timeout}s")
                return ConfirmationOutcome(status=ConfirmationStatus.TIMED_OUT, signature=signature)

            wait_time = min(interval, remaining)
            if cancel is not None:
                if cancel.wait(wait_time):
                    raise Cancelled(f"Stopped watching {signature}")
            else:
                time.sleep(wait_time)
            interval = min(interval * backoff, max_poll_interval)

    def tx_url(self, signature: Union[bytes, str]) -> str:
        """Block explorer URL for a transaction"""
        if not self.explorer_url:
            raise ValueError("No block explorer configured")
        return f"{self.explorer_url}/tx/{normalize_signature(signature)}"

    def address_url(self, address: str) -> str:
        """Block explorer URL for an address (e.g. a mint)"""
        if not self.explorer_url:
            raise ValueError("No block explorer configured")
        return f"{self.explorer_url}/address/{address}"

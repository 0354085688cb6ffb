"""
Tests for the web3 chain client.
"""
from unittest.mock import MagicMock, PropertyMock

import pytest
import requests
from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3
from web3.exceptions import ContractLogicError, TransactionNotFound

from nftmint_sdk.cancel import CancelToken
from nftmint_sdk.chain import DEFAULT_MINT_GAS, Web3ChainClient, normalize_signature
from nftmint_sdk.exceptions import (
    Cancelled,
    InsufficientFunds,
    NetworkError,
    TransactionError,
)
from nftmint_sdk.models import ConfirmationStatus, MintRequest

from test_helpers.fakes import TEST_FACTORY, TEST_RPC_URL

CHAIN_ID = 11155111
METADATA_URI = "ipfs://QmT78zSuBmuS4z925WZfrqQ1qHaJ56DQaTfyMUF7F8ff5o"


@pytest.fixture
def client():
    client = Web3ChainClient(
        TEST_RPC_URL,
        TEST_FACTORY,
        expected_chain_id=CHAIN_ID,
        explorer_url="https://sepolia.etherscan.io/",
    )
    client.w3 = MagicMock()
    client.w3.eth.chain_id = CHAIN_ID
    client.w3.eth.gas_price = 10 ** 9
    client.w3.eth.get_transaction_count.return_value = 7
    client.w3.eth.send_raw_transaction.return_value = b"\x11" * 32

    call = MagicMock()
    call.estimate_gas.return_value = 100000
    call.build_transaction.side_effect = lambda params: {
        **{k: v for k, v in params.items() if k != "from"},
        "to": TEST_FACTORY,
        "data": "0x",
        "value": 0,
    }
    client.contract = MagicMock()
    client.contract.functions.createMint.return_value = call
    return client


@pytest.fixture
def request_(signer):
    return MintRequest.create(
        name="X",
        metadata_uri=METADATA_URI,
        seller_fee_basis_points=500,
        authority=signer,
    )


def test_submit_signs_and_sends(client, request_, signer):
    signature = client.submit(request_)

    assert signature == "0x" + "11" * 32
    args = client.contract.functions.createMint.call_args[0]
    assert args[0] == request_.mint_address
    assert args[2:] == ("X", METADATA_URI, 500, False)

    call = client.contract.functions.createMint.return_value
    params = call.build_transaction.call_args[0][0]
    assert params["from"] == signer.address
    assert params["nonce"] == 7
    assert params["gas"] == 110000
    assert params["chainId"] == CHAIN_ID
    client.w3.eth.get_transaction_count.assert_called_once_with(signer.address, "pending")


def test_mint_signature_proves_mint_key_possession(client, request_, signer):
    signature = client.mint_signature(request_, CHAIN_ID)

    digest = Web3.solidity_keccak(
        ["address", "uint256", "address", "string"],
        [Web3.to_checksum_address(TEST_FACTORY), CHAIN_ID, signer.address, METADATA_URI],
    )
    recovered = Account.recover_message(encode_defunct(primitive=digest), signature=signature)
    assert recovered == request_.mint_address


def test_gas_estimation_fallback(client, request_):
    call = client.contract.functions.createMint.return_value
    call.estimate_gas.side_effect = ValueError("estimation unsupported")

    client.submit(request_)

    assert call.build_transaction.call_args[0][0]["gas"] == DEFAULT_MINT_GAS


def test_reverting_mint_is_a_transaction_error(client, request_):
    call = client.contract.functions.createMint.return_value
    call.estimate_gas.side_effect = ContractLogicError("execution reverted: mint exists")

    with pytest.raises(TransactionError, match="revert"):
        client.submit(request_)
    client.w3.eth.send_raw_transaction.assert_not_called()


def test_signing_failure(client, signer):
    authority = MagicMock()
    authority.address = signer.address
    authority.sign_transaction.side_effect = RuntimeError("hsm offline")
    request = MintRequest.create("X", METADATA_URI, 0, authority)

    with pytest.raises(TransactionError, match="Failed to sign transaction"):
        client.submit(request)


def test_insufficient_funds_from_rpc(client, request_, signer):
    client.w3.eth.send_raw_transaction.side_effect = ValueError(
        {"code": -32000, "message": "insufficient funds for gas * price + value"}
    )

    with pytest.raises(InsufficientFunds) as exc_info:
        client.submit(request_)
    assert exc_info.value.address == signer.address


def test_rpc_rejection(client, request_):
    client.w3.eth.send_raw_transaction.side_effect = ValueError({"code": -32000, "message": "nonce too low"})

    with pytest.raises(TransactionError, match="nonce too low"):
        client.submit(request_)


@pytest.mark.parametrize("target", ["get_transaction_count", "send_raw_transaction"])
def test_connection_failures_are_network_errors(client, request_, target):
    getattr(client.w3.eth, target).side_effect = requests.ConnectionError("refused")

    with pytest.raises(NetworkError):
        client.submit(request_)


def test_account_balance_and_cost(client, request_, signer):
    client.w3.eth.get_balance.return_value = 5 * 10 ** 17

    assert client.account_balance(signer.address) == 5 * 10 ** 17
    assert client.estimate_mint_cost(request_) == 110000 * 10 ** 9

    client.w3.eth.get_balance.side_effect = requests.Timeout("slow")
    with pytest.raises(NetworkError):
        client.account_balance(signer.address)


def test_await_confirmation_confirmed(client):
    client.w3.eth.get_transaction_receipt.side_effect = [
        TransactionNotFound("pending"),
        requests.ConnectionError("blip"),
        {"status": 1, "blockNumber": 12},
    ]

    outcome = client.await_confirmation("0xabc", timeout=60, poll_interval=0.01)

    assert outcome.status == ConfirmationStatus.CONFIRMED
    assert outcome.block_number == 12
    assert client.w3.eth.get_transaction_receipt.call_count == 3


def test_await_confirmation_rejected(client):
    client.w3.eth.get_transaction_receipt.return_value = {"status": 0, "blockNumber": 5}

    outcome = client.await_confirmation("0xabc")

    assert outcome.status == ConfirmationStatus.REJECTED
    assert outcome.signature == "0xabc"


def test_zero_timeout_polls_exactly_once(client):
    client.w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("pending")

    outcome = client.await_confirmation("0xabc", timeout=0)

    assert outcome.status == ConfirmationStatus.TIMED_OUT
    assert outcome.block_number is None
    assert client.w3.eth.get_transaction_receipt.call_count == 1


def test_min_confirmations(client):
    client.min_confirmations = 3
    client.w3.eth.get_transaction_receipt.return_value = {"status": 1, "blockNumber": 10}

    client.w3.eth.block_number = 11
    assert client.await_confirmation("0xabc", timeout=0).status == ConfirmationStatus.TIMED_OUT

    client.w3.eth.block_number = 12
    assert client.await_confirmation("0xabc", timeout=0).status == ConfirmationStatus.CONFIRMED


def test_cancelled_before_poll(client):
    token = CancelToken()
    token.cancel()

    with pytest.raises(Cancelled):
        client.await_confirmation("0xabc", cancel=token)
    client.w3.eth.get_transaction_receipt.assert_not_called()


def test_cancelled_while_waiting(client):
    token = CancelToken()

    def receipt(_signature):
        token.cancel()
        raise TransactionNotFound("pending")

    client.w3.eth.get_transaction_receipt.side_effect = receipt

    with pytest.raises(Cancelled, match="0xabc"):
        client.await_confirmation("0xabc", timeout=60, cancel=token)


def test_assert_chain_id(client, caplog):
    client.assert_chain_id()

    client.w3.eth.chain_id = 1
    with pytest.raises(NetworkError, match="Chain ID mismatch"):
        client.assert_chain_id()

    type(client.w3.eth).chain_id = PropertyMock(side_effect=requests.ConnectionError("down"))
    with pytest.raises(NetworkError, match="Failed to validate chain ID"):
        client.assert_chain_id()

    client.expected_chain_id = None
    client.assert_chain_id()
    assert "No expected chain ID set" in caplog.text


def test_from_network_uses_bundled_config():
    client = Web3ChainClient.from_network("ethereum-sepolia", rpc_url="https://rpc.example.org")

    assert client.expected_chain_id == CHAIN_ID
    assert client.rpc_url == "https://rpc.example.org"
    # stubbed provider reports sepolia
    client.assert_chain_id()


def test_from_network_mismatch_names_network():
    client = Web3ChainClient.from_network("base-sepolia", rpc_url="https://rpc.example.org")

    with pytest.raises(NetworkError, match="base-sepolia"):
        client.assert_chain_id()


def test_constructor_validation():
    with pytest.raises(ValueError, match="https"):
        Web3ChainClient("http://rpc.example.com", TEST_FACTORY)
    with pytest.raises(ValueError, match="factory"):
        Web3ChainClient(TEST_RPC_URL, "0xnot-an-address")
    with pytest.raises(ValueError):
        Web3ChainClient(TEST_RPC_URL, TEST_FACTORY, min_confirmations=0)


def test_explorer_links(client):
    assert client.tx_url(b"\xab" * 32) == "https://sepolia.etherscan.io/tx/0x" + "ab" * 32
    assert client.address_url("0xMint") == "https://sepolia.etherscan.io/address/0xMint"

    client.explorer_url = ""
    with pytest.raises(ValueError):
        client.tx_url("0xabc")


def test_normalize_signature():
    assert normalize_signature("ABCDEF") == "0xabcdef"
    assert normalize_signature("0xABC") == "0xabc"
    assert normalize_signature(b"\x01\x02") == "0x0102"

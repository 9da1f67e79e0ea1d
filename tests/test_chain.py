import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_abi import encode as abi_encode
from eth_utils import keccak
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from abis import ALLOCATED_PRESALE_ABI, KARMA_FACTORY_ABI, REPUTATION_PRESALE_ABI
from chain import ERC20, FACTORY, PRESALE, ChainClient, PendingTransaction, build_error_selectors
from errors import ErrorKind, PresaleError
from fake_chain import ALICE, FACTORY_ADDRESS, PRESALE_ADDRESS, USDC_ADDRESS
from models import ZERO_ADDRESS
from variants import ALLOCATED


def selector(signature):
    return "0x" + keccak(text=signature)[:4].hex()


async def value_of(result):
    return result


@pytest.fixture
def w3():
    mock = MagicMock()
    mock.eth.contract.side_effect = lambda address, abi: MagicMock(address=address)
    return mock


@pytest.fixture
def client(w3):
    return ChainClient(w3, ALLOCATED, PRESALE_ADDRESS, USDC_ADDRESS, receipt_timeout=30)


@pytest.fixture
def signer():
    mock = MagicMock()
    mock.address = ALICE
    mock.sign_transaction.return_value = SimpleNamespace(raw_transaction=b"\x02signed")
    return mock


def raises_code(code, coro):
    with pytest.raises(PresaleError) as exc:
        asyncio.run(coro)
    assert exc.value.code == code
    return exc.value


# ---------- Reads ----------

def test_read_calls_the_contract_function(client):
    function = client._contract(PRESALE).functions.getTotalAcceptedUsdc
    function.return_value.call = AsyncMock(return_value=7_000)

    assert asyncio.run(client.read(PRESALE, "getTotalAcceptedUsdc", 3)) == 7_000
    function.assert_called_once_with(3)


def test_read_revert_is_named(client):
    function = client._contract(PRESALE).functions.getPresale
    function.return_value.call = AsyncMock(
        side_effect=ContractLogicError("execution reverted", data=selector("InvalidPresale()")))

    error = raises_code("CONTRACT_REVERT", client.read(PRESALE, "getPresale", 99))
    assert error.kind == ErrorKind.CHAIN
    assert "InvalidPresale()" in error.message


def test_read_transport_failure(client):
    function = client._contract(PRESALE).functions.getPresale
    function.return_value.call = AsyncMock(side_effect=Web3Exception("connection refused"))
    raises_code("RPC_ERROR", client.read(PRESALE, "getPresale", 1))


def test_erc20_reads_need_an_address(client):
    raises_code("RPC_ERROR", client.read(ERC20, "symbol"))


def test_factory_must_be_configured(client):
    raises_code("RPC_ERROR", client.read(FACTORY, "deployToken"))


def test_zero_address_factory_is_not_configured(w3, signer):
    client = ChainClient(w3, ALLOCATED, PRESALE_ADDRESS, USDC_ADDRESS, factory_address=ZERO_ADDRESS)
    assert client.factory_address is None
    w3.eth.send_raw_transaction = AsyncMock()

    raises_code("RPC_ERROR", client.send(signer, FACTORY, "deployToken", ()))
    w3.eth.send_raw_transaction.assert_not_awaited()


# ---------- Writes ----------

def test_send_builds_signs_and_broadcasts(client, w3, signer):
    w3.eth.chain_id = value_of(84532)
    w3.eth.get_transaction_count = AsyncMock(return_value=4)
    w3.eth.send_raw_transaction = AsyncMock(return_value=b"\xab" * 32)
    function = client._contract(PRESALE).functions.contribute
    function.return_value.build_transaction = AsyncMock(return_value={"to": PRESALE_ADDRESS})

    tx_hash = asyncio.run(client.send(signer, PRESALE, "contribute", 1, 500))

    assert tx_hash == "0x" + "ab" * 32
    function.assert_called_once_with(1, 500)
    function.return_value.build_transaction.assert_awaited_once_with({
        "from": ALICE, "nonce": 4, "value": 0, "chainId": 84532,
    })
    w3.eth.get_transaction_count.assert_awaited_once_with(ALICE, "pending")
    signer.sign_transaction.assert_called_once_with({"to": PRESALE_ADDRESS})
    w3.eth.send_raw_transaction.assert_awaited_once_with(b"\x02signed")


def test_send_rejected_by_estimation_broadcasts_nothing(client, w3, signer):
    w3.eth.chain_id = value_of(84532)
    w3.eth.get_transaction_count = AsyncMock(return_value=0)
    w3.eth.send_raw_transaction = AsyncMock()
    function = client._contract(PRESALE).functions.claim
    function.return_value.build_transaction = AsyncMock(
        side_effect=ContractLogicError("execution reverted", data=selector("NothingToClaim()")))

    error = raises_code("CONTRACT_REVERT", client.send(signer, PRESALE, "claim", 1))
    assert error.operation == "claim"
    assert "NothingToClaim()" in error.message
    w3.eth.send_raw_transaction.assert_not_awaited()


# ---------- Receipts ----------

def raw_receipt(status):
    return {"transactionHash": b"\x01" * 32, "blockNumber": 12, "status": status, "gasUsed": 21_000}


def test_receipt_status_mapping(client, w3):
    w3.eth.wait_for_transaction_receipt = AsyncMock(side_effect=[raw_receipt(1), raw_receipt(0)])

    mined = asyncio.run(client.wait_for_receipt("0x01"))
    assert mined.success
    assert mined.hash == "0x" + "01" * 32
    assert mined.block_number == 12
    assert mined.gas_used == 21_000
    w3.eth.wait_for_transaction_receipt.assert_awaited_with("0x01", timeout=30)

    reverted = asyncio.run(client.wait_for_receipt("0x01", timeout=5))
    assert reverted.status == "reverted"
    assert not reverted.success
    w3.eth.wait_for_transaction_receipt.assert_awaited_with("0x01", timeout=5)


def test_receipt_timeout(client, w3):
    w3.eth.wait_for_transaction_receipt = AsyncMock(side_effect=TimeExhausted("gave up"))
    error = raises_code("RECEIPT_TIMEOUT", client.wait_for_receipt("0xdead"))
    assert "re-query" in error.message


def test_pending_transaction_applies_decoder(client, w3):
    w3.eth.wait_for_transaction_receipt = AsyncMock(return_value=raw_receipt(1))
    pending = PendingTransaction(client, "0x01", "deploy token", decoder=lambda receipt: receipt.block_number)
    assert pending.hash == "0x01"
    assert asyncio.run(pending.wait()) == 12


# ---------- Revert decoding ----------

def test_build_error_selectors():
    selectors = build_error_selectors(ALLOCATED_PRESALE_ABI, REPUTATION_PRESALE_ABI)
    assert selectors[selector("InvalidPresaleStatus(uint8,uint8)")]["name"] == "InvalidPresaleStatus"
    assert selectors[selector("LengthMismatch()")]["name"] == "LengthMismatch"
    assert all(entry["type"] == "error" for entry in selectors.values())


def test_decode_revert_with_arguments():
    w3 = AsyncWeb3(AsyncHTTPProvider("http://127.0.0.1:8545"))
    client = ChainClient(w3, ALLOCATED, PRESALE_ADDRESS, USDC_ADDRESS)

    data = selector("InvalidPresaleStatus(uint8,uint8)") + abi_encode(["uint8", "uint8"], [2, 1]).hex()
    assert client.decode_revert(data) == "InvalidPresaleStatus(current=2, expected=1)"
    assert client.decode_revert(selector("PresaleNotActive()")) == "PresaleNotActive()"
    assert client.decode_revert("0x12345678") is None
    assert client.decode_revert("0x") is None
    assert client.decode_revert(None) is None


def test_factory_reverts_are_named():
    assert selector("ExtensionMsgValueMismatch()") in build_error_selectors(KARMA_FACTORY_ABI)

    w3 = AsyncWeb3(AsyncHTTPProvider("http://127.0.0.1:8545"))
    client = ChainClient(w3, ALLOCATED, PRESALE_ADDRESS, USDC_ADDRESS, factory_address=FACTORY_ADDRESS)
    assert client.decode_revert(selector("ExtensionMsgValueMismatch()")) == "ExtensionMsgValueMismatch()"

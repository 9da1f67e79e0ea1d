# Filename: chain.py

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from eth_utils import keccak
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception
from web3.logs import DISCARD

from abis import ERC20_ABI, KARMA_FACTORY_ABI
from errors import PresaleError, chain_error
from models import ZERO_ADDRESS, TransactionReceipt

logger = logging.getLogger("ChainClient")

PRESALE = "presale"
USDC = "usdc"
FACTORY = "factory"
ERC20 = "erc20"


def _error_signature(entry: Dict[str, Any]) -> str:
    types = ",".join(param["type"] for param in entry.get("inputs", []))
    return f"{entry['name']}({types})"


def build_error_selectors(*abis) -> Dict[str, Dict[str, Any]]:
    """Maps 4-byte selector (0x-prefixed hex) to the ABI error entry."""
    selectors = {}
    for abi in abis:
        for entry in abi:
            if entry.get("type") != "error":
                continue
            selector = "0x" + keccak(text=_error_signature(entry))[:4].hex()
            selectors[selector] = entry
    return selectors


class PendingTransaction:
    """
    Handle on a broadcast transaction.
    wait() blocks until the transaction is mined and returns its receipt,
    or whatever the optional result decoder builds from it.
    """

    def __init__(self, client, tx_hash: str, operation: str,
                 decoder: Optional[Callable[[TransactionReceipt], Any]] = None):
        self.client = client
        self.hash = tx_hash
        self.operation = operation
        self._decoder = decoder

    async def wait(self, timeout: Optional[float] = None):
        receipt = await self.client.wait_for_receipt(self.hash, timeout=timeout)
        if self._decoder is not None:
            return self._decoder(receipt)
        return receipt

    def __repr__(self):
        return f"PendingTransaction(operation={self.operation}, hash={self.hash})"


class ChainClient:
    """
    Read and signed-write access to the presale, stablecoin, token factory
    and deployed token contracts. Knows nothing about presale rules.
    """

    def __init__(self, w3: AsyncWeb3, variant, presale_address: str, usdc_address: str,
                 factory_address: Optional[str] = None,
                 receipt_timeout: Optional[float] = None):
        self.w3 = w3
        self.variant = variant
        self.presale_address = Web3.to_checksum_address(presale_address)
        self.usdc_address = Web3.to_checksum_address(usdc_address)
        # the zero address is how a network without a deployed factory is listed
        if factory_address and factory_address.lower() != ZERO_ADDRESS:
            self.factory_address = Web3.to_checksum_address(factory_address)
        else:
            self.factory_address = None
        self.receipt_timeout = receipt_timeout

        self._contracts = {
            PRESALE: w3.eth.contract(address=self.presale_address, abi=variant.abi),
            USDC: w3.eth.contract(address=self.usdc_address, abi=ERC20_ABI),
        }
        if self.factory_address:
            self._contracts[FACTORY] = w3.eth.contract(address=self.factory_address, abi=KARMA_FACTORY_ABI)

        self._error_selectors = build_error_selectors(variant.abi, ERC20_ABI, KARMA_FACTORY_ABI)
        self._chain_id = None

        logger.info(f"ChainClient initialised for {variant.name} presale at {self.presale_address}")

    @classmethod
    def from_rpc(cls, rpc_url: str, variant, presale_address: str, usdc_address: str,
                 factory_address: Optional[str] = None,
                 receipt_timeout: Optional[float] = None) -> "ChainClient":
        w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        return cls(w3, variant, presale_address, usdc_address,
                   factory_address=factory_address, receipt_timeout=receipt_timeout)

    def _contract(self, target: str, address: Optional[str] = None):
        if target == ERC20:
            if not address:
                raise chain_error("RPC_ERROR", "An ERC20 call needs a token address")
            return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=ERC20_ABI)
        contract = self._contracts.get(target)
        if contract is None:
            raise chain_error("RPC_ERROR", f"No {target} contract configured for this network")
        return contract

    # ---------- Reads ----------

    async def read(self, target: str, function: str, *args, address: Optional[str] = None):
        contract = self._contract(target, address)
        try:
            return await getattr(contract.functions, function)(*args).call()
        except ContractLogicError as e:
            raise self._revert_error(function, e) from e
        except Web3Exception as e:
            raise chain_error("RPC_ERROR", f"{function} call failed: {e}", operation=function) from e

    async def get_block_timestamp(self) -> int:
        try:
            block = await self.w3.eth.get_block("latest")
        except Web3Exception as e:
            raise chain_error("RPC_ERROR", f"Could not fetch latest block: {e}") from e
        return int(block["timestamp"])

    # ---------- Writes ----------

    async def send(self, signer, target: str, function: str, *args, value: int = 0,
                   address: Optional[str] = None) -> str:
        """
        Builds, signs and broadcasts one transaction. Returns the hash.
        Gas estimation runs inside build_transaction, so a call the contract
        would revert is rejected here before anything is broadcast.
        Never retried.
        """
        contract = self._contract(target, address)
        try:
            if self._chain_id is None:
                self._chain_id = await self.w3.eth.chain_id
            nonce = await self.w3.eth.get_transaction_count(signer.address, "pending")
            tx = await getattr(contract.functions, function)(*args).build_transaction({
                "from": signer.address,
                "nonce": nonce,
                "value": value,
                "chainId": self._chain_id,
            })
            signed = signer.sign_transaction(tx)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as e:
            raise self._revert_error(function, e) from e
        except Web3Exception as e:
            raise chain_error("RPC_ERROR", f"{function} submission failed: {e}", operation=function) from e

        tx_hash = Web3.to_hex(tx_hash)
        logger.info(f"📤 {function} submitted: {tx_hash}")
        return tx_hash

    async def wait_for_receipt(self, tx_hash: str, timeout: Optional[float] = None) -> TransactionReceipt:
        timeout = timeout if timeout is not None else self.receipt_timeout
        try:
            raw = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except (TimeExhausted, asyncio.TimeoutError) as e:
            raise chain_error(
                "RECEIPT_TIMEOUT",
                f"No receipt for {tx_hash} after {timeout}s. The outcome is unknown, "
                f"re-query the presale status before resubmitting.",
            ) from e
        except Web3Exception as e:
            raise chain_error("RPC_ERROR", f"Waiting for {tx_hash} failed: {e}") from e

        receipt = TransactionReceipt(
            hash=Web3.to_hex(raw["transactionHash"]),
            block_number=int(raw["blockNumber"]),
            status="success" if raw["status"] == 1 else "reverted",
            gas_used=int(raw["gasUsed"]),
            raw=raw,
        )
        if receipt.success:
            logger.info(f"✅ {receipt.hash} mined in block {receipt.block_number} (gas {receipt.gas_used})")
        else:
            logger.warning(f"❌ {receipt.hash} reverted in block {receipt.block_number}")
        return receipt

    # ---------- Decoding ----------

    def decode_events(self, receipt: TransactionReceipt, target: str, event: str) -> List[Dict[str, Any]]:
        contract = self._contract(target)
        logs = getattr(contract.events, event)().process_receipt(receipt.raw, errors=DISCARD)
        return [dict(log["args"]) for log in logs]

    def _revert_error(self, function: str, exc: ContractLogicError) -> PresaleError:
        reason = self.decode_revert(getattr(exc, "data", None))
        if reason is None:
            reason = str(exc)
        return chain_error("CONTRACT_REVERT", f"{function} reverted: {reason}", operation=function)

    def decode_revert(self, data) -> Optional[str]:
        """Names a custom error from its revert data, e.g. InvalidPresaleStatus(current=2, expected=1)."""
        if not isinstance(data, str) or len(data) < 10:
            return None
        entry = self._error_selectors.get(data[:10].lower())
        if entry is None:
            return None
        inputs = entry.get("inputs", [])
        if not inputs:
            return f"{entry['name']}()"
        try:
            values = self.w3.codec.decode([p["type"] for p in inputs], bytes.fromhex(data[10:]))
        except Exception as e:
            logger.debug(f"Could not decode arguments of {entry['name']}: {e}")
            return f"{entry['name']}(...)"
        args = ", ".join(f"{p['name']}={v}" for p, v in zip(inputs, values))
        return f"{entry['name']}({args})"

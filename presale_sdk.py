# Filename: presale_sdk.py

import asyncio
import logging
from typing import Optional, Sequence

from eth_abi import encode as abi_encode

import guards
from chain import ERC20, FACTORY, PRESALE, USDC, PendingTransaction
from errors import chain_error, invalid_argument, no_signer
from models import (
    DeploymentConfig,
    DeploymentResult,
    Presale,
    PresaleInfo,
    PresaleStatus,
    TokenInfo,
    TransactionReceipt,
    UserPresaleInfo,
    decode_presale,
    to_bytes32,
)
from presale_utils import MAX_UINT256
from variants import ClaimShape

logger = logging.getLogger("PresaleSDK")

SETTLED = (PresaleStatus.CLAIMABLE, PresaleStatus.FAILED, PresaleStatus.EXPIRED)


class PresaleSDK:
    """
    Lifecycle operations on one presale contract.

    Every write follows the same steps: read the presale fresh, check the
    preconditions for its current status, send exactly one transaction and
    hand back a PendingTransaction. Nothing is cached between calls and
    nothing is retried. The signer is passed to each write explicitly.
    """

    def __init__(self, chain, variant=None):
        self.chain = chain
        self.variant = variant or chain.variant
        logger.info(f"PresaleSDK ready ({self.variant.name} variant)")

    # ---------- Reads ----------

    async def get_presale(self, presale_id: int) -> Presale:
        raw = await self.chain.read(PRESALE, "getPresale", presale_id)
        return decode_presale(presale_id, raw, self.variant)

    async def get_total_accepted_usdc(self, presale_id: int) -> int:
        return await self.chain.read(PRESALE, self.variant.total_accepted_function, presale_id)

    async def get_presale_info(self, presale_id: int) -> PresaleInfo:
        if self.variant.has_total_score:
            presale, accepted, expected_supply, allocated = await asyncio.gather(
                self.get_presale(presale_id),
                self.get_total_accepted_usdc(presale_id),
                self.chain.read(PRESALE, "getExpectedTokenSupply", presale_id),
                self.chain.read(PRESALE, "getTotalAllocatedTokens", presale_id),
            )
            return PresaleInfo(presale, accepted, expected_supply, allocated)

        presale, accepted = await asyncio.gather(
            self.get_presale(presale_id),
            self.get_total_accepted_usdc(presale_id),
        )
        return PresaleInfo(presale, accepted)

    async def get_contribution(self, presale_id: int, user: str) -> int:
        return await self.chain.read(PRESALE, "getContribution", presale_id, user)

    async def get_user_presale_info(self, presale_id: int, user: str,
                                    presale: Optional[Presale] = None) -> UserPresaleInfo:
        contribution, allocation, accepted, refund, tokens_claimed, refund_claimed = await asyncio.gather(
            self.get_contribution(presale_id, user),
            self.chain.read(PRESALE, "getTokenAllocation", presale_id, user),
            self.chain.read(PRESALE, "getAcceptedContribution", presale_id, user),
            self.chain.read(PRESALE, "getRefundAmount", presale_id, user),
            self.chain.read(PRESALE, "tokensClaimed", presale_id, user),
            self.chain.read(PRESALE, "refundClaimed", presale_id, user),
        )
        info = UserPresaleInfo(
            presale_id=presale_id,
            user=user,
            contribution=int(contribution),
            accepted_contribution=int(accepted),
            token_allocation=int(allocation),
            refund_amount=int(refund),
            tokens_claimed=bool(tokens_claimed),
            refund_claimed=bool(refund_claimed),
        )
        if presale is not None:
            self._check_settlement(presale, info)
        return info

    def _check_settlement(self, presale: Presale, info: UserPresaleInfo):
        # the contract stays authoritative, mismatches are only reported
        if info.accepted_contribution > info.contribution:
            logger.warning(
                f"Presale {info.presale_id}: accepted {info.accepted_contribution} exceeds "
                f"contribution {info.contribution} for {info.user}"
            )
        if info.refund_claimed:
            return
        expected = info.expected_refund(presale.status)
        if presale.status in SETTLED and info.refund_amount != expected:
            logger.warning(
                f"Presale {info.presale_id}: on-chain refund {info.refund_amount} for {info.user} "
                f"differs from expected {expected} in status {presale.status}"
            )

    async def get_max_accepted_usdc(self, presale_id: int, user: str) -> int:
        self.variant.require("get_max_accepted_usdc")
        return await self.chain.read(PRESALE, "getMaxAcceptedUsdc", presale_id, user)

    async def get_usdc_balance(self, address: str) -> int:
        return await self.chain.read(USDC, "balanceOf", address)

    async def get_usdc_allowance(self, owner: str) -> int:
        return await self.chain.read(USDC, "allowance", owner, self.chain.presale_address)

    async def get_token_info(self, presale: Presale) -> Optional[TokenInfo]:
        if not presale.is_deployed:
            return None
        token = presale.deployed_token
        name, symbol, decimals, total_supply = await asyncio.gather(
            self.chain.read(ERC20, "name", address=token),
            self.chain.read(ERC20, "symbol", address=token),
            self.chain.read(ERC20, "decimals", address=token),
            self.chain.read(ERC20, "totalSupply", address=token),
        )
        return TokenInfo(token, name, symbol, int(decimals), int(total_supply))

    async def get_token_balance(self, presale: Presale, address: str) -> Optional[int]:
        if not presale.is_deployed:
            return None
        return await self.chain.read(ERC20, "balanceOf", address, address=presale.deployed_token)

    # ---------- Helpers ----------

    @staticmethod
    def _require_signer(signer, operation: str):
        if signer is None:
            raise no_signer(operation)
        return signer

    async def _submit(self, signer, operation: str, target: str, function: str, *args,
                      value: int = 0, decoder=None) -> PendingTransaction:
        tx_hash = await self.chain.send(signer, target, function, *args, value=value)
        logger.info(f"{operation}: transaction {tx_hash} sent from {signer.address}")
        return PendingTransaction(self.chain, tx_hash, operation, decoder)

    # ---------- Stablecoin ----------

    async def approve_usdc(self, signer, amount: int) -> PendingTransaction:
        self._require_signer(signer, "approve")
        if amount < 0 or amount > MAX_UINT256:
            raise invalid_argument("INVALID_AMOUNT", "approve", f"Approval amount out of range: {amount}")
        return await self._submit(signer, "approve", USDC, "approve", self.chain.presale_address, amount)

    async def approve_max_usdc(self, signer) -> PendingTransaction:
        return await self.approve_usdc(signer, MAX_UINT256)

    # ---------- Contributor operations ----------

    async def contribute(self, signer, presale_id: int, amount: int,
                         auto_approve: bool = False) -> PendingTransaction:
        """
        Contributes `amount` atomic USDC units.

        With auto_approve, a missing allowance is granted first with a separate
        approve transaction that is awaited before the presale is re-read and
        the contribution sent. The two transactions are not atomic: if the
        contribution never goes out, the approval stays in place.
        """
        self._require_signer(signer, "contribute")
        presale, balance, allowance = await asyncio.gather(
            self.get_presale(presale_id),
            self.get_usdc_balance(signer.address),
            self.get_usdc_allowance(signer.address),
        )
        needs_approval = guards.check_contribute(presale, amount, balance, allowance, auto_approve)

        if needs_approval:
            logger.info(f"Allowance {allowance} below {amount}, approving first")
            approval = await self.approve_usdc(signer, amount)
            receipt = await approval.wait()
            if not receipt.success:
                raise chain_error("TRANSACTION_REVERTED",
                                  f"USDC approval {receipt.hash} reverted", operation="approve")

            # status may have moved while the approval was mining
            presale, balance, allowance = await asyncio.gather(
                self.get_presale(presale_id),
                self.get_usdc_balance(signer.address),
                self.get_usdc_allowance(signer.address),
            )
            guards.check_contribute(presale, amount, balance, allowance)

        return await self._submit(signer, "contribute", PRESALE, "contribute", presale_id, amount)

    async def withdraw(self, signer, presale_id: int, amount: int) -> PendingTransaction:
        self._require_signer(signer, "withdraw")
        presale, contribution = await asyncio.gather(
            self.get_presale(presale_id),
            self.get_contribution(presale_id, signer.address),
        )
        guards.check_withdraw(presale, amount, contribution)
        return await self._submit(signer, "withdraw", PRESALE, "withdrawContribution", presale_id, amount)

    async def _presale_and_position(self, presale_id: int, user: str):
        presale = await self.get_presale(presale_id)
        info = await self.get_user_presale_info(presale_id, user, presale)
        return presale, info

    async def claim(self, signer, presale_id: int) -> PendingTransaction:
        """Combined claim: pays the token allocation and the refund in one transaction."""
        self.variant.require("claim")
        self._require_signer(signer, "claim")
        presale, info = await self._presale_and_position(presale_id, signer.address)
        guards.check_claim(presale, info)
        return await self._submit(signer, "claim", PRESALE, "claim", presale_id)

    async def claim_tokens(self, signer, presale_id: int) -> PendingTransaction:
        self.variant.require("claim_tokens")
        self._require_signer(signer, "claim tokens")
        presale, info = await self._presale_and_position(presale_id, signer.address)
        guards.check_claim_tokens(presale, info)
        return await self._submit(signer, "claim tokens", PRESALE, "claimTokens", presale_id)

    async def claim_refund(self, signer, presale_id: int) -> PendingTransaction:
        self.variant.require("claim_refund")
        self._require_signer(signer, "claim refund")
        presale, info = await self._presale_and_position(presale_id, signer.address)
        guards.check_claim_refund(presale, info)
        return await self._submit(signer, "claim refund", PRESALE, "claimRefund", presale_id)

    async def claim_all(self, signer, presale_id: int):
        """
        Claims whatever the position allows, in the variant's claim shape.
        Returns the list of pending transactions (one for the combined shape,
        up to two for the separate shape).
        """
        if self.variant.claim_shape == ClaimShape.COMBINED:
            return [await self.claim(signer, presale_id)]

        self._require_signer(signer, "claim")
        presale, info = await self._presale_and_position(presale_id, signer.address)
        pending = []
        if info.token_allocation > 0 and not info.tokens_claimed:
            pending.append(await self.claim_tokens(signer, presale_id))
        if info.refund_amount > 0 and not info.refund_claimed:
            pending.append(await self.claim_refund(signer, presale_id))
        if not pending:
            # raises the reason nothing is owed
            if presale.status == PresaleStatus.CLAIMABLE and info.token_allocation > 0:
                guards.check_claim_tokens(presale, info)
            guards.check_claim_refund(presale, info)
        return pending

    # ---------- Owner / admin operations ----------

    async def create_presale(self, signer, presale_owner: str, target_usdc: int, min_usdc: int,
                             duration: int, deployment_config: DeploymentConfig,
                             presale_token_supply: Optional[int] = None) -> PendingTransaction:
        self._require_signer(signer, "create presale")
        guards.check_create(target_usdc, min_usdc, duration)

        args = [presale_owner, target_usdc, min_usdc, duration]
        if self.variant.has_total_score:
            if not presale_token_supply:
                raise invalid_argument("INVALID_AMOUNT", "create presale",
                                       "the reputation presale needs a token supply greater than zero")
            args.append(presale_token_supply)
        args.append(deployment_config.to_tuple())

        return await self._submit(signer, "create presale", PRESALE, "createPresale", *args)

    def presale_id_from_receipt(self, receipt: TransactionReceipt) -> int:
        events = self.chain.decode_events(receipt, PRESALE, "PresaleCreated")
        if not events:
            raise chain_error("DECODE_ERROR", f"No PresaleCreated event in {receipt.hash}")
        return int(events[0]["presaleId"])

    async def prepare_for_deployment(self, signer, presale_id: int, salt: bytes) -> PendingTransaction:
        self._require_signer(signer, "prepare for deployment")
        presale = await self.get_presale(presale_id)
        guards.check_prepare_for_deployment(presale, self.variant.allocated_status)
        return await self._submit(signer, "prepare for deployment", PRESALE,
                                  "prepareForDeployment", presale_id, to_bytes32(salt))

    async def deploy_token(self, signer, presale_id: int) -> PendingTransaction:
        """
        Sends the stored deployment config to the token factory.
        The presale extension gets the ABI-encoded presale id as its data and
        the call carries the sum of all extension msgValues.
        wait() yields a DeploymentResult.
        """
        self._require_signer(signer, "deploy token")
        presale = await self.get_presale(presale_id)
        guards.check_deploy(presale)

        config = presale.deployment_config
        presale_extension = self.chain.presale_address.lower()
        patched = False
        for ext in config.extension_configs:
            if ext.extension.lower() == presale_extension:
                ext.extension_data = abi_encode(["uint256"], [presale_id])
                patched = True
        if not patched:
            logger.warning(f"Presale {presale_id}: no extension points at the presale contract")

        def decode(receipt: TransactionReceipt) -> DeploymentResult:
            if not receipt.success:
                raise chain_error("TRANSACTION_REVERTED",
                                  f"Token deployment {receipt.hash} reverted", operation="deploy token")
            for event in self.chain.decode_events(receipt, PRESALE, "TokensReceived"):
                if int(event["presaleId"]) == presale_id:
                    return DeploymentResult(event["token"], int(event["tokenSupply"]), receipt)
            raise chain_error("DECODE_ERROR", f"No TokensReceived event for presale {presale_id} in {receipt.hash}")

        return await self._submit(signer, "deploy token", FACTORY, "deployToken", config.to_tuple(),
                                  value=config.total_msg_value, decoder=decode)

    async def set_max_accepted_usdc(self, signer, presale_id: int, user: str, max_usdc: int) -> PendingTransaction:
        self.variant.require("set_max_accepted_usdc")
        self._require_signer(signer, "set max accepted USDC")
        presale = await self.get_presale(presale_id)
        guards.check_allocation(presale, self.variant.pending_status, "set max accepted USDC")
        return await self._submit(signer, "set max accepted USDC", PRESALE,
                                  "setMaxAcceptedUsdc", presale_id, user, max_usdc)

    async def batch_set_max_accepted_usdc(self, signer, presale_id: int, users: Sequence[str],
                                          amounts: Sequence[int]) -> PendingTransaction:
        self.variant.require("batch_set_max_accepted_usdc")
        self._require_signer(signer, "batch set max accepted USDC")
        guards.check_batch_lengths(users, amounts, presale_id)
        presale = await self.get_presale(presale_id)
        guards.check_allocation(presale, self.variant.pending_status, "batch set max accepted USDC")
        return await self._submit(signer, "batch set max accepted USDC", PRESALE,
                                  "batchSetMaxAcceptedUsdc", presale_id, list(users), list(amounts))

    async def upload_allocation(self, signer, presale_id: int, user: str, token_amount: int,
                                accepted_usdc: int) -> PendingTransaction:
        self.variant.require("upload_allocation")
        self._require_signer(signer, "upload allocation")
        presale = await self.get_presale(presale_id)
        guards.check_allocation(presale, self.variant.pending_status, "upload allocation")
        return await self._submit(signer, "upload allocation", PRESALE,
                                  "uploadAllocation", presale_id, user, token_amount, accepted_usdc)

    async def set_karma_fee_for_presale(self, signer, presale_id: int, fee_bps: int) -> PendingTransaction:
        self.variant.require("set_karma_fee_for_presale")
        self._require_signer(signer, "set karma fee")
        presale = await self.get_presale(presale_id)
        guards.check_fee_update(presale, fee_bps)
        return await self._submit(signer, "set karma fee", PRESALE,
                                  "setKarmaFeeForPresale", presale_id, fee_bps)

    async def claim_usdc(self, signer, presale_id: int, recipient: Optional[str] = None) -> PendingTransaction:
        self._require_signer(signer, "claim USDC")
        presale = await self.get_presale(presale_id)
        guards.check_claim_usdc(presale)
        return await self._submit(signer, "claim USDC", PRESALE, "claimUsdc",
                                  presale_id, recipient or signer.address)

# Filename: guards.py

"""
Client-side preconditions for every lifecycle operation.

Each guard takes values freshly read from the chain and either returns or
raises a PresaleError. Guards never touch the network, so a rejection always
happens before any transaction is built.
"""

from typing import Iterable, Sequence

from loguru import logger

from errors import (
    PresaleError,
    already_claimed,
    insufficient,
    invalid_argument,
    invalid_status,
    nothing_to_claim,
)
from models import Presale, PresaleStatus, UserPresaleInfo

MAX_FEE_BPS = 10_000

WITHDRAWABLE = (PresaleStatus.ACTIVE, PresaleStatus.FAILED, PresaleStatus.EXPIRED)
REFUNDABLE = (PresaleStatus.CLAIMABLE, PresaleStatus.FAILED)
FEE_EDITABLE = (PresaleStatus.ACTIVE, PresaleStatus.PENDING_ALLOCATION, PresaleStatus.ALLOCATION_SET)


def _reject(error: PresaleError) -> PresaleError:
    logger.warning(f"[GUARD ❌] {error.code}: {error.message}")
    return error


def require_status(presale: Presale, allowed: Iterable[PresaleStatus], code: str, operation: str):
    allowed = tuple(allowed)
    if presale.status not in allowed:
        raise _reject(invalid_status(
            code, operation, presale.presale_id, presale.status.value, [s.value for s in allowed]
        ))


def require_positive(amount: int, operation: str, what: str = "amount"):
    if amount <= 0:
        raise _reject(invalid_argument("INVALID_AMOUNT", operation, f"{what} must be greater than zero"))


# ---------- Contributor operations ----------

def check_contribute(presale: Presale, amount: int, balance: int, allowance: int,
                     auto_approve: bool = False) -> bool:
    """
    Returns True when an approval has to be sent before the contribution.
    """
    require_positive(amount, "contribute")
    require_status(presale, [PresaleStatus.ACTIVE], "PRESALE_NOT_ACTIVE", "contribute")

    if balance < amount:
        raise _reject(insufficient("INSUFFICIENT_BALANCE", "contribute", "USDC balance",
                                   amount, balance, presale.presale_id))

    if allowance < amount:
        if not auto_approve:
            raise _reject(insufficient("INSUFFICIENT_ALLOWANCE", "contribute", "USDC allowance",
                                       amount, allowance, presale.presale_id))
        return True
    return False


def check_withdraw(presale: Presale, amount: int, contribution: int):
    require_positive(amount, "withdraw")
    require_status(presale, WITHDRAWABLE, "PRESALE_NOT_WITHDRAWABLE", "withdraw")
    if contribution < amount:
        raise _reject(insufficient("INSUFFICIENT_CONTRIBUTION", "withdraw", "contribution",
                                   amount, contribution, presale.presale_id))


def check_claim_tokens(presale: Presale, user: UserPresaleInfo):
    require_status(presale, [PresaleStatus.CLAIMABLE], "PRESALE_NOT_CLAIMABLE", "claim tokens")
    if user.tokens_claimed:
        raise _reject(already_claimed("ALREADY_CLAIMED", "claim tokens", presale.presale_id, "Tokens"))
    if user.token_allocation == 0:
        raise _reject(nothing_to_claim("NO_TOKENS", "claim tokens", presale.presale_id, "tokens"))


def check_claim_refund(presale: Presale, user: UserPresaleInfo):
    require_status(presale, REFUNDABLE, "PRESALE_NOT_CLAIMABLE", "claim refund")
    if user.refund_claimed:
        raise _reject(already_claimed("ALREADY_CLAIMED", "claim refund", presale.presale_id, "Refund"))
    if user.refund_amount == 0:
        raise _reject(nothing_to_claim("NO_REFUND", "claim refund", presale.presale_id, "refund"))


def check_claim(presale: Presale, user: UserPresaleInfo):
    # combined claim sets both flags in one transaction
    require_status(presale, [PresaleStatus.CLAIMABLE], "PRESALE_NOT_CLAIMABLE", "claim")
    if user.tokens_claimed or user.refund_claimed:
        raise _reject(already_claimed("ALREADY_CLAIMED", "claim", presale.presale_id, "Tokens and refund"))
    if user.token_allocation == 0 and user.refund_amount == 0:
        raise _reject(nothing_to_claim("NOTHING_TO_CLAIM", "claim", presale.presale_id, "tokens or refund"))


# ---------- Owner / admin operations ----------

def check_create(target_usdc: int, min_usdc: int, duration: int):
    if target_usdc <= 0:
        raise _reject(invalid_argument("INVALID_AMOUNT", "create presale", "target USDC must be greater than zero"))
    if min_usdc > target_usdc:
        raise _reject(invalid_argument("INVALID_AMOUNT", "create presale", "min USDC cannot exceed target USDC"))
    if duration <= 0:
        raise _reject(invalid_argument("INVALID_AMOUNT", "create presale", "duration must be greater than zero"))


def check_prepare_for_deployment(presale: Presale, allocated_status: PresaleStatus):
    require_status(presale, [allocated_status], "PRESALE_NOT_ALLOCATED", "prepare for deployment")


def check_deploy(presale: Presale):
    require_status(presale, [PresaleStatus.READY_FOR_DEPLOYMENT],
                   "PRESALE_NOT_READY_FOR_DEPLOYMENT", "deploy token")


def check_allocation(presale: Presale, pending_status: PresaleStatus, operation: str):
    require_status(presale, [pending_status], "PRESALE_NOT_PENDING_ALLOCATION", operation)


def check_batch_lengths(users: Sequence[str], amounts: Sequence[int], presale_id: int):
    if len(users) != len(amounts):
        raise _reject(invalid_argument(
            "LENGTH_MISMATCH", "batch set max accepted USDC",
            f"{len(users)} users but {len(amounts)} amounts", presale_id,
        ))


def check_claim_usdc(presale: Presale):
    require_status(presale, [PresaleStatus.CLAIMABLE], "PRESALE_NOT_CLAIMABLE", "claim USDC")
    if presale.usdc_claimed:
        raise _reject(already_claimed("USDC_ALREADY_CLAIMED", "claim USDC", presale.presale_id, "USDC proceeds"))


def check_fee_update(presale: Presale, fee_bps: int):
    if fee_bps < 0 or fee_bps > MAX_FEE_BPS:
        raise _reject(invalid_argument(
            "INVALID_FEE", "set karma fee", f"fee must be between 0 and {MAX_FEE_BPS} bps, got {fee_bps}",
            presale.presale_id,
        ))
    require_status(presale, FEE_EDITABLE, "PRESALE_FINALIZED", "set karma fee")

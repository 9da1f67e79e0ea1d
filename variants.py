# Filename: variants.py

"""
The two presale contract variants the client knows how to drive.

A variant is picked once from configuration and handed to the SDK. It fixes
the ABI, the meaning of the on-chain status codes, the claim call shape and
the admin allocation flow, so no code path has to detect the variant per call.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Tuple

from abis import ALLOCATED_PRESALE_ABI, REPUTATION_PRESALE_ABI
from errors import chain_error, unknown_variant, unsupported_operation
from models import PresaleStatus


class ClaimShape(str, Enum):
    COMBINED = "combined"            # claim(presaleId) pays tokens and refund together
    SEPARATE = "separate"            # claimTokens / claimRefund, independently one-shot


class AdminFlow(str, Enum):
    MAX_ACCEPTED_USDC = "max_accepted_usdc"
    UPLOAD_ALLOCATION = "upload_allocation"


_SHARED_OPERATIONS = frozenset({
    "create_presale", "contribute", "withdraw", "prepare_for_deployment",
    "deploy_token", "claim_usdc",
})


@dataclass(frozen=True)
class PresaleVariant:
    name: str
    statuses: Tuple[PresaleStatus, ...]        # index is the on-chain uint8
    claim_shape: ClaimShape
    admin_flow: AdminFlow
    pending_status: PresaleStatus
    allocated_status: PresaleStatus
    deadline_field: str
    total_accepted_function: str
    has_total_score: bool
    operations: FrozenSet[str]
    abi: List[Dict[str, Any]] = field(repr=False, compare=False, hash=False, default_factory=list)

    def status_from_code(self, code) -> PresaleStatus:
        code = int(code)
        if code < 0 or code >= len(self.statuses):
            raise chain_error("DECODE_ERROR", f"Unknown {self.name} presale status code: {code}")
        return self.statuses[code]

    def code_for(self, status: PresaleStatus) -> int:
        try:
            return self.statuses.index(status)
        except ValueError:
            raise chain_error(
                "DECODE_ERROR", f"Status {status} does not exist on the {self.name} presale"
            ) from None

    def supports(self, operation: str) -> bool:
        return operation in self.operations

    def require(self, operation: str) -> None:
        if not self.supports(operation):
            raise unsupported_operation(operation, self.name)


ALLOCATED = PresaleVariant(
    name="allocated",
    statuses=(
        PresaleStatus.NOT_CREATED,
        PresaleStatus.ACTIVE,
        PresaleStatus.PENDING_ALLOCATION,
        PresaleStatus.ALLOCATION_SET,
        PresaleStatus.READY_FOR_DEPLOYMENT,
        PresaleStatus.CLAIMABLE,
        PresaleStatus.FAILED,
        PresaleStatus.EXPIRED,
    ),
    claim_shape=ClaimShape.COMBINED,
    admin_flow=AdminFlow.MAX_ACCEPTED_USDC,
    pending_status=PresaleStatus.PENDING_ALLOCATION,
    allocated_status=PresaleStatus.ALLOCATION_SET,
    deadline_field="allocationDeadline",
    total_accepted_function="getTotalAcceptedUsdc",
    has_total_score=False,
    operations=_SHARED_OPERATIONS | {
        "claim", "set_max_accepted_usdc", "batch_set_max_accepted_usdc",
        "get_max_accepted_usdc", "set_karma_fee_for_presale",
    },
    abi=ALLOCATED_PRESALE_ABI,
)

REPUTATION = PresaleVariant(
    name="reputation",
    statuses=(
        PresaleStatus.NOT_CREATED,
        PresaleStatus.ACTIVE,
        PresaleStatus.PENDING_SCORES,
        PresaleStatus.SCORES_UPLOADED,
        PresaleStatus.READY_FOR_DEPLOYMENT,
        PresaleStatus.CLAIMABLE,
        PresaleStatus.FAILED,
        PresaleStatus.EXPIRED,
    ),
    claim_shape=ClaimShape.SEPARATE,
    admin_flow=AdminFlow.UPLOAD_ALLOCATION,
    pending_status=PresaleStatus.PENDING_SCORES,
    allocated_status=PresaleStatus.SCORES_UPLOADED,
    deadline_field="scoreUploadDeadline",
    total_accepted_function="totalAcceptedUsdc",
    has_total_score=True,
    operations=_SHARED_OPERATIONS | {"claim_tokens", "claim_refund", "upload_allocation"},
    abi=REPUTATION_PRESALE_ABI,
)

VARIANTS = {
    ALLOCATED.name: ALLOCATED,
    REPUTATION.name: REPUTATION,
}


def get_variant(name: str) -> PresaleVariant:
    variant = VARIANTS.get((name or "").strip().lower())
    if variant is None:
        raise unknown_variant(name, VARIANTS.keys())
    return variant

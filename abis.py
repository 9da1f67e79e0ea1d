# Filename: abis.py

"""
Contract ABIs used by the presale client.

Only the entries the client calls or decodes are listed. The two presale
variants share most of their surface, so the shared structs and functions are
built once and each variant adds its own claim / admin / view entries.
"""

from typing import Any, Dict, List, Optional


def _param(name: str, type_: str, components: Optional[List[Dict[str, Any]]] = None,
           indexed: Optional[bool] = None) -> Dict[str, Any]:
    param: Dict[str, Any] = {"name": name, "type": type_}
    if components is not None:
        param["components"] = components
    if indexed is not None:
        param["indexed"] = indexed
    return param


def _function(name: str, inputs=(), outputs=(), mutability: str = "view") -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": list(inputs),
        "outputs": list(outputs),
        "stateMutability": mutability,
    }


def _event(name: str, inputs) -> Dict[str, Any]:
    return {"type": "event", "name": name, "inputs": list(inputs), "anonymous": False}


def _error(name: str, inputs=()) -> Dict[str, Any]:
    return {"type": "error", "name": name, "inputs": list(inputs)}


# ---------- Shared structs ----------

TOKEN_CONFIG = [
    _param("tokenAdmin", "address"),
    _param("name", "string"),
    _param("symbol", "string"),
    _param("salt", "bytes32"),
    _param("image", "string"),
    _param("metadata", "string"),
    _param("context", "string"),
    _param("originatingChainId", "uint256"),
]

POOL_CONFIG = [
    _param("hook", "address"),
    _param("pairedToken", "address"),
    _param("tickIfToken0IsKarma", "int24"),
    _param("tickSpacing", "int24"),
    _param("poolData", "bytes"),
]

LOCKER_CONFIG = [
    _param("locker", "address"),
    _param("rewardAdmins", "address[]"),
    _param("rewardRecipients", "address[]"),
    _param("rewardBps", "uint16[]"),
    _param("tickLower", "int24[]"),
    _param("tickUpper", "int24[]"),
    _param("positionBps", "uint16[]"),
    _param("lockerData", "bytes"),
]

MEV_MODULE_CONFIG = [
    _param("mevModule", "address"),
    _param("mevModuleData", "bytes"),
]

EXTENSION_CONFIG = [
    _param("extension", "address"),
    _param("msgValue", "uint256"),
    _param("extensionBps", "uint16"),
    _param("extensionData", "bytes"),
]

DEPLOYMENT_CONFIG = [
    _param("tokenConfig", "tuple", TOKEN_CONFIG),
    _param("poolConfig", "tuple", POOL_CONFIG),
    _param("lockerConfig", "tuple", LOCKER_CONFIG),
    _param("mevModuleConfig", "tuple", MEV_MODULE_CONFIG),
    _param("extensionConfigs", "tuple[]", EXTENSION_CONFIG),
]


def _presale_struct(deadline_field: str, with_score: bool) -> List[Dict[str, Any]]:
    fields = [
        _param("status", "uint8"),
        _param("deploymentConfig", "tuple", DEPLOYMENT_CONFIG),
        _param("presaleOwner", "address"),
        _param("targetUsdc", "uint256"),
        _param("minUsdc", "uint256"),
        _param("endTime", "uint256"),
        _param(deadline_field, "uint256"),
        _param("totalContributions", "uint256"),
    ]
    if with_score:
        fields.append(_param("totalScore", "uint256"))
    fields += [
        _param("deployedToken", "address"),
        _param("tokenSupply", "uint256"),
        _param("usdcClaimed", "bool"),
        _param("karmaFeeBps", "uint256"),
    ]
    return fields


_ID = _param("presaleId", "uint256")
_USER = _param("user", "address")
_UINT = _param("", "uint256")
_BOOL = _param("", "bool")


def _shared_presale_entries(presale_struct) -> List[Dict[str, Any]]:
    return [
        _function("getPresale", [_ID], [_param("", "tuple", presale_struct)]),
        _function("getPresaleStatus", [_ID], [_param("", "uint8")]),
        _function("getContribution", [_ID, _USER], [_UINT]),
        _function("getTokenAllocation", [_ID, _USER], [_UINT]),
        _function("getAcceptedContribution", [_ID, _USER], [_UINT]),
        _function("getRefundAmount", [_ID, _USER], [_UINT]),
        _function("totalAcceptedUsdc", [_param("", "uint256")], [_UINT]),
        _function("tokensClaimed", [_param("", "uint256"), _param("", "address")], [_BOOL]),
        _function("refundClaimed", [_param("", "uint256"), _param("", "address")], [_BOOL]),
        _function("admins", [_param("", "address")], [_BOOL]),
        _function("owner", [], [_param("", "address")]),
        _function("contribute", [_ID, _param("amount", "uint256")], mutability="nonpayable"),
        _function("withdrawContribution", [_ID, _param("amount", "uint256")], mutability="nonpayable"),
        _function("prepareForDeployment", [_ID, _param("salt", "bytes32")], mutability="nonpayable"),
        _function("claimUsdc", [_ID, _param("recipient", "address")], mutability="nonpayable"),
        _event("Contribution", [
            _param("presaleId", "uint256", indexed=True),
            _param("contributor", "address", indexed=True),
            _param("amount", "uint256", indexed=False),
            _param("totalContributions", "uint256", indexed=False),
        ]),
        _event("ContributionWithdrawn", [
            _param("presaleId", "uint256", indexed=True),
            _param("contributor", "address", indexed=True),
            _param("amount", "uint256", indexed=False),
            _param("totalContributions", "uint256", indexed=False),
        ]),
        _event("PresaleReadyForDeployment", [
            _param("presaleId", "uint256", indexed=True),
            _param("salt", "bytes32", indexed=False),
        ]),
        _event("TokensReceived", [
            _param("presaleId", "uint256", indexed=True),
            _param("token", "address", indexed=True),
            _param("tokenSupply", "uint256", indexed=False),
        ]),
        _event("TokensClaimed", [
            _param("presaleId", "uint256", indexed=True),
            _param("user", "address", indexed=True),
            _param("tokenAmount", "uint256", indexed=False),
        ]),
        _event("RefundClaimed", [
            _param("presaleId", "uint256", indexed=True),
            _param("user", "address", indexed=True),
            _param("refundAmount", "uint256", indexed=False),
        ]),
        _event("UsdcClaimed", [
            _param("presaleId", "uint256", indexed=True),
            _param("recipient", "address", indexed=True),
            _param("amount", "uint256", indexed=False),
            _param("fee", "uint256", indexed=False),
        ]),
        _error("AlreadyClaimed"),
        _error("ContributionWindowEnded"),
        _error("ContributionWindowNotEnded"),
        _error("InsufficientBalance"),
        _error("InsufficientContribution"),
        _error("InvalidMsgValue"),
        _error("InvalidPresale"),
        _error("InvalidPresaleDuration"),
        _error("InvalidPresaleOwner"),
        _error("InvalidPresaleStatus", [_param("current", "uint8"), _param("expected", "uint8")]),
        _error("InvalidRecipient"),
        _error("InvalidUsdcGoal"),
        _error("NotExpectingTokenDeployment"),
        _error("NothingToClaim"),
        _error("OwnableInvalidOwner", [_param("owner", "address")]),
        _error("OwnableUnauthorizedAccount", [_param("account", "address")]),
        _error("PresaleNotActive"),
        _error("PresaleNotClaimable"),
        _error("PresaleNotFailed"),
        _error("PresaleNotLastExtension"),
        _error("PresaleNotReadyForAllocation"),
        _error("PresaleNotReadyForDeployment"),
        _error("PresaleSupplyZero"),
        _error("ReentrancyGuardReentrantCall"),
        _error("SafeERC20FailedOperation", [_param("token", "address")]),
        _error("SaltBufferNotExpired"),
        _error("Unauthorized"),
    ]


# ---------- Allocated presale ----------

ALLOCATED_PRESALE_ABI = _shared_presale_entries(
    _presale_struct("allocationDeadline", with_score=False)
) + [
    _function(
        "createPresale",
        [
            _param("presaleOwner", "address"),
            _param("targetUsdc", "uint256"),
            _param("minUsdc", "uint256"),
            _param("duration", "uint256"),
            _param("deploymentConfig", "tuple", DEPLOYMENT_CONFIG),
        ],
        [_param("presaleId", "uint256")],
        mutability="nonpayable",
    ),
    _function("getTotalAcceptedUsdc", [_ID], [_UINT]),
    _function("getMaxAcceptedUsdc", [_ID, _USER], [_UINT]),
    _function("karmaDefaultFeeBps", [], [_UINT]),
    _function(
        "claim",
        [_ID],
        [_param("tokenAmount", "uint256"), _param("refundAmount", "uint256")],
        mutability="nonpayable",
    ),
    _function(
        "setMaxAcceptedUsdc",
        [_ID, _USER, _param("maxUsdc", "uint256")],
        mutability="nonpayable",
    ),
    _function(
        "batchSetMaxAcceptedUsdc",
        [_ID, _param("users", "address[]"), _param("maxUsdcAmounts", "uint256[]")],
        mutability="nonpayable",
    ),
    _function(
        "setKarmaFeeForPresale",
        [_ID, _param("newFeeBps", "uint256")],
        mutability="nonpayable",
    ),
    _event("PresaleCreated", [
        _param("presaleId", "uint256", indexed=True),
        _param("presaleOwner", "address", indexed=True),
        _param("targetUsdc", "uint256", indexed=False),
        _param("minUsdc", "uint256", indexed=False),
        _param("endTime", "uint256", indexed=False),
        _param("allocationDeadline", "uint256", indexed=False),
        _param("karmaFeeBps", "uint256", indexed=False),
    ]),
    _event("MaxAcceptedUsdcSet", [
        _param("presaleId", "uint256", indexed=True),
        _param("user", "address", indexed=True),
        _param("maxUsdc", "uint256", indexed=False),
        _param("acceptedUsdc", "uint256", indexed=False),
    ]),
    _event("KarmaFeeUpdatedForPresale", [
        _param("presaleId", "uint256", indexed=True),
        _param("oldFee", "uint256", indexed=False),
        _param("newFee", "uint256", indexed=False),
    ]),
    _error("AllocationDeadlineExpired"),
    _error("InvalidKarmaFee"),
    _error("LengthMismatch"),
]


# ---------- Reputation (score-based) presale ----------

REPUTATION_PRESALE_ABI = _shared_presale_entries(
    _presale_struct("scoreUploadDeadline", with_score=True)
) + [
    _function(
        "createPresale",
        [
            _param("presaleOwner", "address"),
            _param("targetUsdc", "uint256"),
            _param("minUsdc", "uint256"),
            _param("duration", "uint256"),
            _param("presaleTokenSupply", "uint256"),
            _param("deploymentConfig", "tuple", DEPLOYMENT_CONFIG),
        ],
        [_param("presaleId", "uint256")],
        mutability="nonpayable",
    ),
    _function("getExpectedTokenSupply", [_ID], [_UINT]),
    _function("getTotalAllocatedTokens", [_ID], [_UINT]),
    _function("claimTokens", [_ID], mutability="nonpayable"),
    _function("claimRefund", [_ID], mutability="nonpayable"),
    _function(
        "uploadAllocation",
        [_ID, _USER, _param("tokenAmount", "uint256"), _param("acceptedUsdc", "uint256")],
        mutability="nonpayable",
    ),
    _event("PresaleCreated", [
        _param("presaleId", "uint256", indexed=True),
        _param("presaleOwner", "address", indexed=True),
        _param("targetUsdc", "uint256", indexed=False),
        _param("minUsdc", "uint256", indexed=False),
        _param("endTime", "uint256", indexed=False),
        _param("scoreUploadDeadline", "uint256", indexed=False),
        _param("karmaFeeBps", "uint256", indexed=False),
    ]),
]


# ---------- ERC20 (stablecoin and deployed token) ----------

ERC20_ABI = [
    _function("name", [], [_param("", "string")]),
    _function("symbol", [], [_param("", "string")]),
    _function("decimals", [], [_param("", "uint8")]),
    _function("totalSupply", [], [_UINT]),
    _function("balanceOf", [_param("account", "address")], [_UINT]),
    _function("allowance", [_param("owner", "address"), _param("spender", "address")], [_UINT]),
    _function(
        "approve",
        [_param("spender", "address"), _param("amount", "uint256")],
        [_BOOL],
        mutability="nonpayable",
    ),
    _event("Approval", [
        _param("owner", "address", indexed=True),
        _param("spender", "address", indexed=True),
        _param("value", "uint256", indexed=False),
    ]),
]


# ---------- Token factory ----------

KARMA_FACTORY_ABI = [
    _function(
        "deployToken",
        [_param("deploymentConfig", "tuple", DEPLOYMENT_CONFIG)],
        [_param("tokenAddress", "address")],
        mutability="payable",
    ),
    _error("Deprecated"),
    _error("ExtensionMsgValueMismatch"),
    _error("ExtensionNotEnabled"),
    _error("HookNotEnabled"),
    _error("LockerNotEnabled"),
    _error("MaxExtensionBpsExceeded"),
    _error("MaxExtensionsExceeded"),
    _error("MevModuleNotEnabled"),
    _error("OnlyNonOriginatingChains"),
    _error("OnlyOriginatingChain"),
    _error("OwnableUnauthorizedAccount", [_param("account", "address")]),
    _error("ReentrancyGuardReentrantCall"),
    _error("Unauthorized"),
]

# Filename: models.py

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from errors import chain_error

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
ZERO_BYTES32 = b"\x00" * 32


class PresaleStatus(str, Enum):
    """
    Union of the lifecycle states of both presale contract variants.
    The on-chain uint8 for each state depends on the variant, see variants.py.
    """
    NOT_CREATED = "NotCreated"
    ACTIVE = "Active"
    PENDING_ALLOCATION = "PendingAllocation"
    PENDING_SCORES = "PendingScores"
    ALLOCATION_SET = "AllocationSet"
    SCORES_UPLOADED = "ScoresUploaded"
    READY_FOR_DEPLOYMENT = "ReadyForDeployment"
    CLAIMABLE = "Claimable"
    FAILED = "Failed"
    EXPIRED = "Expired"

    def __str__(self):
        return self.value


def _to_bytes(value) -> bytes:
    if value is None:
        return b""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    text = str(value)
    if text.startswith("0x"):
        text = text[2:]
    return bytes.fromhex(text)


def to_bytes32(value) -> bytes:
    raw = _to_bytes(value)
    if len(raw) > 32:
        raise ValueError(f"salt longer than 32 bytes: {len(raw)}")
    return raw.rjust(32, b"\x00")


# ---------- Deployment config (opaque pass-through bundle) ----------

@dataclass
class TokenConfig:
    token_admin: str
    name: str
    symbol: str
    salt: bytes = ZERO_BYTES32
    image: str = ""
    metadata: str = ""
    context: str = ""
    originating_chain_id: int = 0

    def to_tuple(self):
        return (self.token_admin, self.name, self.symbol, self.salt, self.image,
                self.metadata, self.context, self.originating_chain_id)


@dataclass
class PoolConfig:
    hook: str
    paired_token: str
    tick_if_token0_is_karma: int
    tick_spacing: int
    pool_data: bytes = b""

    def to_tuple(self):
        return (self.hook, self.paired_token, self.tick_if_token0_is_karma,
                self.tick_spacing, self.pool_data)


@dataclass
class LockerConfig:
    locker: str
    reward_admins: List[str] = field(default_factory=list)
    reward_recipients: List[str] = field(default_factory=list)
    reward_bps: List[int] = field(default_factory=list)
    tick_lower: List[int] = field(default_factory=list)
    tick_upper: List[int] = field(default_factory=list)
    position_bps: List[int] = field(default_factory=list)
    locker_data: bytes = b""

    def to_tuple(self):
        return (self.locker, list(self.reward_admins), list(self.reward_recipients),
                list(self.reward_bps), list(self.tick_lower), list(self.tick_upper),
                list(self.position_bps), self.locker_data)


@dataclass
class MevModuleConfig:
    mev_module: str
    mev_module_data: bytes = b""

    def to_tuple(self):
        return (self.mev_module, self.mev_module_data)


@dataclass
class ExtensionConfig:
    extension: str
    msg_value: int = 0
    extension_bps: int = 0
    extension_data: bytes = b""

    def to_tuple(self):
        return (self.extension, self.msg_value, self.extension_bps, self.extension_data)


@dataclass
class DeploymentConfig:
    token_config: TokenConfig
    pool_config: PoolConfig
    locker_config: LockerConfig
    mev_module_config: MevModuleConfig
    extension_configs: List[ExtensionConfig] = field(default_factory=list)

    def to_tuple(self):
        return (
            self.token_config.to_tuple(),
            self.pool_config.to_tuple(),
            self.locker_config.to_tuple(),
            self.mev_module_config.to_tuple(),
            [ext.to_tuple() for ext in self.extension_configs],
        )

    @property
    def total_msg_value(self) -> int:
        return sum(ext.msg_value for ext in self.extension_configs)

    @classmethod
    def from_tuple(cls, raw: Sequence[Any]) -> "DeploymentConfig":
        token, pool, locker, mev, extensions = raw
        return cls(
            token_config=TokenConfig(token[0], token[1], token[2], to_bytes32(token[3]),
                                     token[4], token[5], token[6], int(token[7])),
            pool_config=PoolConfig(pool[0], pool[1], int(pool[2]), int(pool[3]), _to_bytes(pool[4])),
            locker_config=LockerConfig(locker[0], list(locker[1]), list(locker[2]),
                                       [int(v) for v in locker[3]], [int(v) for v in locker[4]],
                                       [int(v) for v in locker[5]], [int(v) for v in locker[6]],
                                       _to_bytes(locker[7])),
            mev_module_config=MevModuleConfig(mev[0], _to_bytes(mev[1])),
            extension_configs=[
                ExtensionConfig(ext[0], int(ext[1]), int(ext[2]), _to_bytes(ext[3]))
                for ext in extensions
            ],
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentConfig":
        """
        Builds a config from the camelCase JSON layout used by deployment files.
        Byte fields are hex strings, amounts are integers or decimal strings.
        """
        token = data["tokenConfig"]
        pool = data["poolConfig"]
        locker = data["lockerConfig"]
        mev = data.get("mevModuleConfig") or {"mevModule": ZERO_ADDRESS}
        return cls(
            token_config=TokenConfig(
                token_admin=token["tokenAdmin"],
                name=token["name"],
                symbol=token["symbol"],
                salt=to_bytes32(token.get("salt", "0x")),
                image=token.get("image", ""),
                metadata=token.get("metadata", ""),
                context=token.get("context", ""),
                originating_chain_id=int(token.get("originatingChainId", 0)),
            ),
            pool_config=PoolConfig(
                hook=pool["hook"],
                paired_token=pool["pairedToken"],
                tick_if_token0_is_karma=int(pool["tickIfToken0IsKarma"]),
                tick_spacing=int(pool["tickSpacing"]),
                pool_data=_to_bytes(pool.get("poolData", "0x")),
            ),
            locker_config=LockerConfig(
                locker=locker["locker"],
                reward_admins=list(locker.get("rewardAdmins", [])),
                reward_recipients=list(locker.get("rewardRecipients", [])),
                reward_bps=[int(v) for v in locker.get("rewardBps", [])],
                tick_lower=[int(v) for v in locker.get("tickLower", [])],
                tick_upper=[int(v) for v in locker.get("tickUpper", [])],
                position_bps=[int(v) for v in locker.get("positionBps", [])],
                locker_data=_to_bytes(locker.get("lockerData", "0x")),
            ),
            mev_module_config=MevModuleConfig(
                mev_module=mev["mevModule"],
                mev_module_data=_to_bytes(mev.get("mevModuleData", "0x")),
            ),
            extension_configs=[
                ExtensionConfig(
                    extension=ext["extension"],
                    msg_value=int(ext.get("msgValue", 0)),
                    extension_bps=int(ext.get("extensionBps", 0)),
                    extension_data=_to_bytes(ext.get("extensionData", "0x")),
                )
                for ext in data.get("extensionConfigs", [])
            ],
        )


# ---------- Presale state ----------

@dataclass
class Presale:
    """
    Snapshot of one presale as read from the contract.
    Never cached: every lifecycle operation reads a fresh one.
    """
    presale_id: int
    status: PresaleStatus
    deployment_config: DeploymentConfig
    presale_owner: str
    target_usdc: int
    min_usdc: int
    end_time: int
    deadline: int                    # allocation or score upload deadline
    total_contributions: int
    deployed_token: str
    token_supply: int
    usdc_claimed: bool
    karma_fee_bps: int
    total_score: Optional[int] = None

    @property
    def is_deployed(self) -> bool:
        return self.deployed_token.lower() != ZERO_ADDRESS


@dataclass
class PresaleInfo:
    presale: Presale
    total_accepted_usdc: int
    expected_token_supply: Optional[int] = None
    total_allocated_tokens: Optional[int] = None


@dataclass
class UserPresaleInfo:
    presale_id: int
    user: str
    contribution: int = 0
    accepted_contribution: int = 0
    token_allocation: int = 0
    refund_amount: int = 0
    tokens_claimed: bool = False
    refund_claimed: bool = False

    def expected_refund(self, status: PresaleStatus) -> int:
        """Refund the contract should report for this position in the given status."""
        if status in (PresaleStatus.FAILED, PresaleStatus.EXPIRED):
            return self.contribution
        if status == PresaleStatus.CLAIMABLE:
            return max(0, self.contribution - self.accepted_contribution)
        return 0


@dataclass
class TransactionReceipt:
    hash: str
    block_number: int
    status: str                      # "success" or "reverted"
    gas_used: int
    raw: Any = field(default=None, repr=False)

    @property
    def success(self) -> bool:
        return self.status == "success"


@dataclass
class DeploymentResult:
    token_address: str
    token_supply: int
    receipt: TransactionReceipt


@dataclass
class TokenInfo:
    address: str
    name: str
    symbol: str
    decimals: int
    total_supply: int


# ---------- Decoding ----------

def decode_presale(presale_id: int, raw: Sequence[Any], variant) -> Presale:
    """
    Turns the getPresale struct into a Presale.
    This is the only place that knows the field order of the struct.
    """
    values = list(raw)
    expected = 13 if variant.has_total_score else 12
    if len(values) != expected:
        raise chain_error(
            "DECODE_ERROR",
            f"getPresale returned {len(values)} fields, expected {expected} for the {variant.name} presale",
        )

    total_score = None
    if variant.has_total_score:
        total_score = int(values.pop(8))

    try:
        deployment_config = DeploymentConfig.from_tuple(values[1])
    except (TypeError, ValueError) as e:
        raise chain_error("DECODE_ERROR", f"Malformed deployment config for presale {presale_id}: {e}") from e

    return Presale(
        presale_id=presale_id,
        status=variant.status_from_code(values[0]),
        deployment_config=deployment_config,
        presale_owner=values[2],
        target_usdc=int(values[3]),
        min_usdc=int(values[4]),
        end_time=int(values[5]),
        deadline=int(values[6]),
        total_contributions=int(values[7]),
        deployed_token=values[8],
        token_supply=int(values[9]),
        usdc_claimed=bool(values[10]),
        karma_fee_bps=int(values[11]),
        total_score=total_score,
    )


def encode_presale(presale: Presale, variant) -> tuple:
    """Inverse of decode_presale, in struct field order."""
    values = [
        variant.code_for(presale.status),
        presale.deployment_config.to_tuple(),
        presale.presale_owner,
        presale.target_usdc,
        presale.min_usdc,
        presale.end_time,
        presale.deadline,
        presale.total_contributions,
        presale.deployed_token,
        presale.token_supply,
        presale.usdc_claimed,
        presale.karma_fee_bps,
    ]
    if variant.has_total_score:
        values.insert(8, presale.total_score or 0)
    return tuple(values)

# Filename: presale_utils.py

import time
from decimal import ROUND_DOWN, Decimal, InvalidOperation, localcontext
from typing import Optional, Union

from errors import invalid_argument
from models import Presale, PresaleStatus

USDC_DECIMALS = 6
TOKEN_DECIMALS = 18
MAX_UINT256 = 2 ** 256 - 1


def progress_percentage(presale: Presale) -> int:
    """Share of the target raised, floored and clamped to [0, 100]."""
    if presale.target_usdc == 0:
        return 0
    percentage = presale.total_contributions * 100 // presale.target_usdc
    return max(0, min(100, percentage))


def time_remaining(presale: Presale, now: Optional[int] = None) -> int:
    """Seconds until end_time, 0 once the deadline has passed."""
    if now is None:
        now = int(time.time())
    return max(0, presale.end_time - now)


def status_to_string(status: PresaleStatus) -> str:
    return status.value


def is_active(presale: Presale) -> bool:
    return presale.status == PresaleStatus.ACTIVE


def is_claimable(presale: Presale) -> bool:
    return presale.status == PresaleStatus.CLAIMABLE


def is_failed(presale: Presale) -> bool:
    return presale.status == PresaleStatus.FAILED


# ---------- Unit conversion ----------

def format_units(amount: int, decimals: int) -> str:
    """
    Atomic units to a plain decimal string without trailing zeros.
    Exact: works on the integer, never through float.
    """
    sign = "-" if amount < 0 else ""
    whole, fraction = divmod(abs(int(amount)), 10 ** decimals)
    if fraction == 0:
        return f"{sign}{whole}"
    digits = str(fraction).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{digits}"


def parse_units(value: Union[str, int, Decimal], decimals: int) -> int:
    """
    Display units to atomic units. Digits beyond the smallest unit are truncated.
    """
    try:
        number = Decimal(str(value).strip().replace(",", "").replace("_", ""))
    except InvalidOperation:
        raise invalid_argument("INVALID_AMOUNT", "parse amount", f"Not a number: {value!r}") from None
    if not number.is_finite():
        raise invalid_argument("INVALID_AMOUNT", "parse amount", f"Not a finite amount: {value!r}")
    with localcontext() as ctx:
        ctx.prec = 100
        scaled = (number * (Decimal(10) ** decimals)).quantize(Decimal(1), rounding=ROUND_DOWN)
    return int(scaled)


def format_usdc(amount: int) -> str:
    return format_units(amount, USDC_DECIMALS)


def parse_usdc(value) -> int:
    return parse_units(value, USDC_DECIMALS)


def format_tokens(amount: int) -> str:
    return format_units(amount, TOKEN_DECIMALS)


def parse_tokens(value) -> int:
    return parse_units(value, TOKEN_DECIMALS)


def format_duration(seconds: int) -> str:
    if seconds <= 0:
        return "Ended"
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"

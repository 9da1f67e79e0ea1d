# Filename: output.py

import sys
import traceback
from typing import Iterable, Sequence, Tuple

from tabulate import tabulate

from errors import PresaleError

STATUS_ICONS = {
    "NotCreated": "⚪",
    "Active": "🟢",
    "PendingAllocation": "🟡",
    "PendingScores": "🟡",
    "AllocationSet": "🔵",
    "ScoresUploaded": "🔵",
    "ReadyForDeployment": "🚀",
    "Claimable": "💰",
    "Failed": "🔴",
    "Expired": "🔴",
}


def log_success(message: str):
    print(f"✓ {message}")


def log_error(message: str):
    print(f"✗ {message}", file=sys.stderr)


def log_warning(message: str):
    print(f"⚠ {message}")


def log_info(message: str):
    print(f"ℹ {message}")


def format_address(address: str, truncate: bool = False) -> str:
    if truncate and len(address) > 12:
        return f"{address[:6]}...{address[-4:]}"
    return address


def format_tx_hash(tx_hash: str, truncate: bool = True) -> str:
    if truncate and len(tx_hash) > 16:
        return f"{tx_hash[:10]}...{tx_hash[-6:]}"
    return tx_hash


def format_amount(amount: str, symbol: str = "") -> str:
    return f"{amount} {symbol}" if symbol else amount


def format_status(status) -> str:
    name = getattr(status, "value", str(status))
    return f"{STATUS_ICONS.get(name, '❔')} {name}"


def format_bool(value: bool) -> str:
    return "✅ Yes" if value else "❌ No"


def format_progress(percentage: int, width: int = 20) -> str:
    filled = round(width * max(0, min(100, percentage)) / 100)
    return f"[{'█' * filled}{'░' * (width - filled)}] {percentage}%"


def print_header(title: str):
    print()
    print(f"📊 {title}")
    print("─" * max(20, len(title) + 3))


def print_kv(title: str, rows: Iterable[Tuple[str, object]]):
    print_header(title)
    print(tabulate([[label, value] for label, value in rows], tablefmt="plain"))
    print()


def print_table(title: str, headers: Sequence[str], rows: Iterable[Sequence[object]]):
    print_header(title)
    print(tabulate(list(rows), headers=headers, tablefmt="grid"))
    print()


def print_receipt(receipt, explorer_link: str = None):
    rows = [
        ("Transaction", receipt.hash),
        ("Block", receipt.block_number),
        ("Status", "✅ success" if receipt.success else "❌ reverted"),
        ("Gas Used", f"{receipt.gas_used:,}"),
    ]
    if explorer_link:
        rows.append(("Explorer", explorer_link))
    print(tabulate(rows, tablefmt="plain"))


def print_error(error: Exception, debug: bool = False):
    if isinstance(error, PresaleError):
        log_error(f"{error.message} [{error.code}]")
    else:
        log_error(str(error) or error.__class__.__name__)
    if debug:
        traceback.print_exception(type(error), error, error.__traceback__)

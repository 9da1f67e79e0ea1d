# Filename: main.py

import argparse
import asyncio
import csv
import json
import logging
import sys

import config as cfg
import output
from chain import ChainClient
from errors import PresaleError, chain_error
from models import DeploymentConfig, DeploymentResult
from presale_sdk import PresaleSDK
from presale_utils import (
    format_duration,
    format_tokens,
    format_usdc,
    parse_tokens,
    parse_usdc,
    progress_percentage,
    time_remaining,
)
from telegram_alert import TelegramNotifier

logger = logging.getLogger("Main")

BANNER = "🪙 Karma Presale CLI"


class CliContext:
    """Resolved configuration and lazily built SDK / signer for one command."""

    def __init__(self, config: dict, network: str, variant_name: str, debug: bool = False):
        self.config = config
        self.network = network
        self.network_config = cfg.get_network_config(network)
        self.variant = cfg.get_variant(variant_name)
        self.debug = debug
        self.notifier = TelegramNotifier.from_config(config)
        self._sdk = None
        self._signer = None

    @property
    def sdk(self) -> PresaleSDK:
        if self._sdk is None:
            chain = ChainClient.from_rpc(
                self.network_config["rpc_url"],
                self.variant,
                self.network_config["presale_address"],
                self.network_config["usdc_address"],
                factory_address=self.network_config["karma_factory_address"],
                receipt_timeout=cfg.receipt_timeout(self.config),
            )
            self._sdk = PresaleSDK(chain, self.variant)
        return self._sdk

    @property
    def signer(self):
        if self._signer is None:
            self._signer = cfg.get_signer(self.config)
        return self._signer

    def tx_url(self, tx_hash: str) -> str:
        return cfg.explorer_tx_url(self.network, tx_hash)

    def address_url(self, address: str) -> str:
        return cfg.explorer_address_url(self.network, address)

    async def confirm(self, pending, action: str, presale_id=None):
        """Prints the hash, waits for the receipt and reports it."""
        output.log_info(f"{action}: transaction sent {output.format_tx_hash(pending.hash)}")
        output.log_info("Waiting for confirmation...")
        result = await pending.wait()
        receipt = result.receipt if isinstance(result, DeploymentResult) else result

        output.print_receipt(receipt, self.tx_url(receipt.hash))
        if self.notifier:
            self.notifier.send_transaction_alert(action, presale_id, receipt,
                                                 explorer_link=self.tx_url(receipt.hash))

        if not receipt.success:
            raise chain_error("TRANSACTION_REVERTED", f"{action} reverted in transaction {receipt.hash}",
                              operation=pending.operation)
        output.log_success(f"{action} confirmed")
        return result


# ---------- Top level ----------

async def cmd_networks(ctx: CliContext, args):
    rows = []
    for key, network in cfg.get_networks().items():
        default = " (default)" if key == cfg.DEFAULT_CONFIG["NETWORK"] else ""
        rows.append([f"{key}{default}", network["name"], network["chain_id"], network["explorer_url"]])
    output.print_table("Supported Networks", ["Network", "Name", "Chain ID", "Explorer"], rows)


async def cmd_info(ctx: CliContext, args):
    print(BANNER)
    rows = [
        ("Network", f"{ctx.network_config['name']} ({ctx.network})"),
        ("Chain ID", ctx.network_config["chain_id"]),
        ("Presale Variant", ctx.variant.name),
        ("Claim Shape", ctx.variant.claim_shape.value),
        ("Presale Contract", ctx.network_config["presale_address"]),
        ("Token Factory", ctx.network_config["karma_factory_address"]),
        ("USDC", ctx.network_config["usdc_address"]),
    ]
    try:
        rows.append(("Wallet", ctx.signer.address))
    except PresaleError:
        rows.append(("Wallet", "not configured (set PRIVATE_KEY)"))
    output.print_kv("Client Configuration", rows)


# ---------- presale ----------

async def cmd_presale_info(ctx: CliContext, args):
    info = await ctx.sdk.get_presale_info(args.presale_id)
    presale = info.presale
    remaining = time_remaining(presale)

    rows = [
        ("Status", output.format_status(presale.status)),
        ("Owner", presale.presale_owner),
        ("Target USDC", output.format_amount(format_usdc(presale.target_usdc), "USDC")),
        ("Min USDC", output.format_amount(format_usdc(presale.min_usdc), "USDC")),
        ("Total Contributions", output.format_amount(format_usdc(presale.total_contributions), "USDC")),
        ("Total Accepted", output.format_amount(format_usdc(info.total_accepted_usdc), "USDC")),
        ("Progress", output.format_progress(progress_percentage(presale))),
        ("Time Remaining", format_duration(remaining)),
        ("Karma Fee", f"{presale.karma_fee_bps} bps"),
    ]
    if info.expected_token_supply is not None:
        rows.append(("Expected Supply", output.format_amount(format_tokens(info.expected_token_supply), "tokens")))
        rows.append(("Allocated Tokens", output.format_amount(format_tokens(info.total_allocated_tokens), "tokens")))
    if presale.is_deployed:
        rows.append(("Token", presale.deployed_token))
        rows.append(("Token Supply", output.format_amount(format_tokens(presale.token_supply), "tokens")))
        rows.append(("USDC Claimed", output.format_bool(presale.usdc_claimed)))

    output.print_kv(f"Presale #{args.presale_id}", rows)


async def cmd_user_info(ctx: CliContext, args):
    address = args.address or ctx.signer.address
    presale = await ctx.sdk.get_presale(args.presale_id)
    user = await ctx.sdk.get_user_presale_info(args.presale_id, address, presale)

    output.print_kv(f"Position in Presale #{args.presale_id}", [
        ("Address", address),
        ("Status", output.format_status(presale.status)),
        ("Contribution", output.format_amount(format_usdc(user.contribution), "USDC")),
        ("Accepted", output.format_amount(format_usdc(user.accepted_contribution), "USDC")),
        ("Token Allocation", output.format_amount(format_tokens(user.token_allocation), "tokens")),
        ("Refund Amount", output.format_amount(format_usdc(user.refund_amount), "USDC")),
        ("Tokens Claimed", output.format_bool(user.tokens_claimed)),
        ("Refund Claimed", output.format_bool(user.refund_claimed)),
    ])


async def cmd_contribute(ctx: CliContext, args):
    amount = parse_usdc(args.amount)
    output.log_info(f"Contributing {format_usdc(amount)} USDC to presale #{args.presale_id}")
    pending = await ctx.sdk.contribute(ctx.signer, args.presale_id, amount, auto_approve=not args.no_approve)
    await ctx.confirm(pending, "Contribution", args.presale_id)


async def cmd_withdraw(ctx: CliContext, args):
    amount = parse_usdc(args.amount)
    output.log_info(f"Withdrawing {format_usdc(amount)} USDC from presale #{args.presale_id}")
    pending = await ctx.sdk.withdraw(ctx.signer, args.presale_id, amount)
    await ctx.confirm(pending, "Withdrawal", args.presale_id)


async def cmd_claim(ctx: CliContext, args):
    for pending in await ctx.sdk.claim_all(ctx.signer, args.presale_id):
        await ctx.confirm(pending, f"Claim ({pending.operation})", args.presale_id)


async def cmd_claim_tokens(ctx: CliContext, args):
    pending = await ctx.sdk.claim_tokens(ctx.signer, args.presale_id)
    await ctx.confirm(pending, "Token claim", args.presale_id)


async def cmd_claim_refund(ctx: CliContext, args):
    pending = await ctx.sdk.claim_refund(ctx.signer, args.presale_id)
    await ctx.confirm(pending, "Refund claim", args.presale_id)


async def cmd_claim_usdc(ctx: CliContext, args):
    pending = await ctx.sdk.claim_usdc(ctx.signer, args.presale_id, args.recipient)
    await ctx.confirm(pending, "USDC proceeds claim", args.presale_id)


# ---------- token ----------

async def cmd_token_deploy(ctx: CliContext, args):
    presale = await ctx.sdk.get_presale(args.presale_id)
    token_config = presale.deployment_config.token_config
    output.print_kv("Token Configuration", [
        ("Token Name", token_config.name),
        ("Token Symbol", token_config.symbol),
        ("Token Admin", output.format_address(token_config.token_admin, truncate=True)),
    ])

    pending = await ctx.sdk.deploy_token(ctx.signer, args.presale_id)
    result = await ctx.confirm(pending, "Token deployment", args.presale_id)

    output.print_kv("Deployment Details", [
        ("Token Address", result.token_address),
        ("Token Supply", output.format_amount(format_tokens(result.token_supply), "tokens")),
    ])
    output.log_success(f"Token: {ctx.address_url(result.token_address)}")


async def cmd_token_info(ctx: CliContext, args):
    presale = await ctx.sdk.get_presale(args.presale_id)
    token = await ctx.sdk.get_token_info(presale)
    if token is None:
        output.log_warning(f"Token not deployed yet (status: {presale.status})")
        return 1

    output.print_kv(f"Token for Presale #{args.presale_id}", [
        ("Token Address", token.address),
        ("Token Name", token.name),
        ("Token Symbol", token.symbol),
        ("Decimals", token.decimals),
        ("Total Supply", output.format_amount(format_tokens(token.total_supply), "tokens")),
        ("USDC Claimed", output.format_bool(presale.usdc_claimed)),
    ])
    output.log_info(f"Explorer: {ctx.address_url(token.address)}")


async def cmd_token_balance(ctx: CliContext, args):
    address = args.address or ctx.signer.address
    presale = await ctx.sdk.get_presale(args.presale_id)
    balance = await ctx.sdk.get_token_balance(presale, address)
    if balance is None:
        output.log_warning(f"Token not deployed yet (status: {presale.status})")
        return 1
    output.print_kv("Token Balance", [
        ("Address", address),
        ("Token", presale.deployed_token),
        ("Balance", output.format_amount(format_tokens(balance), "tokens")),
    ])


# ---------- wallet ----------

async def cmd_wallet_balance(ctx: CliContext, args):
    address = args.address or ctx.signer.address
    balance, allowance = await asyncio.gather(
        ctx.sdk.get_usdc_balance(address),
        ctx.sdk.get_usdc_allowance(address),
    )
    output.print_kv("Wallet", [
        ("Address", address),
        ("USDC Balance", output.format_amount(format_usdc(balance), "USDC")),
        ("Presale Allowance", output.format_amount(format_usdc(allowance), "USDC")),
    ])


async def cmd_wallet_approve(ctx: CliContext, args):
    if args.amount.strip().lower() == "max":
        output.log_info("Approving unlimited USDC for the presale contract")
        pending = await ctx.sdk.approve_max_usdc(ctx.signer)
    else:
        amount = parse_usdc(args.amount)
        output.log_info(f"Approving {format_usdc(amount)} USDC for the presale contract")
        pending = await ctx.sdk.approve_usdc(ctx.signer, amount)
    await ctx.confirm(pending, "USDC approval")


async def cmd_wallet_address(ctx: CliContext, args):
    address = ctx.signer.address
    output.print_kv("Wallet", [("Address", address), ("Explorer", ctx.address_url(address))])


# ---------- admin ----------

async def cmd_admin_create(ctx: CliContext, args):
    with open(args.config_file, "r") as f:
        data = json.load(f)
    try:
        deployment_config = DeploymentConfig.from_dict(data)
    except KeyError as e:
        raise ValueError(f"{args.config_file}: deployment config is missing {e}") from e

    supply = parse_tokens(args.supply) if args.supply else None
    pending = await ctx.sdk.create_presale(
        ctx.signer,
        args.owner or ctx.signer.address,
        parse_usdc(args.target),
        parse_usdc(args.min),
        args.duration,
        deployment_config,
        presale_token_supply=supply,
    )
    receipt = await ctx.confirm(pending, "Presale creation")
    presale_id = ctx.sdk.presale_id_from_receipt(receipt)
    output.log_success(f"Presale #{presale_id} created")


async def cmd_admin_prepare(ctx: CliContext, args):
    pending = await ctx.sdk.prepare_for_deployment(ctx.signer, args.presale_id, args.salt)
    await ctx.confirm(pending, "Prepare for deployment", args.presale_id)


async def cmd_admin_set_max_usdc(ctx: CliContext, args):
    pending = await ctx.sdk.set_max_accepted_usdc(ctx.signer, args.presale_id, args.user, parse_usdc(args.amount))
    await ctx.confirm(pending, "Set max accepted USDC", args.presale_id)


def read_allocation_csv(path: str):
    """Rows of `address,amount` (amount in USDC); a header row is skipped."""
    users, amounts = [], []
    with open(path, newline="") as f:
        reader = csv.reader(f)
        for row in reader:
            if not row or not row[0].strip().startswith("0x"):
                continue
            if len(row) < 2:
                raise ValueError(f"{path}: line {reader.line_num} needs address,amount")
            users.append(row[0].strip())
            amounts.append(parse_usdc(row[1]))
    return users, amounts


async def cmd_admin_batch_set_max_usdc(ctx: CliContext, args):
    users, amounts = read_allocation_csv(args.csv_file)
    output.log_info(f"Setting max accepted USDC for {len(users)} users")
    pending = await ctx.sdk.batch_set_max_accepted_usdc(ctx.signer, args.presale_id, users, amounts)
    await ctx.confirm(pending, "Batch set max accepted USDC", args.presale_id)


async def cmd_admin_upload_allocation(ctx: CliContext, args):
    pending = await ctx.sdk.upload_allocation(
        ctx.signer, args.presale_id, args.user, parse_tokens(args.tokens), parse_usdc(args.accepted)
    )
    await ctx.confirm(pending, "Upload allocation", args.presale_id)


async def cmd_admin_set_fee(ctx: CliContext, args):
    pending = await ctx.sdk.set_karma_fee_for_presale(ctx.signer, args.presale_id, args.fee_bps)
    await ctx.confirm(pending, "Set karma fee", args.presale_id)


# ---------- Parser ----------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="karma-presale", description="Karma presale client")
    parser.add_argument("--debug", action="store_true", help="Verbose logging and tracebacks")
    parser.add_argument("-n", "--network", help="Network to use (default from NETWORK)")
    parser.add_argument("--variant", help="Presale contract variant: allocated or reputation")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("networks", help="List supported networks").set_defaults(func=cmd_networks)
    sub.add_parser("info", help="Show client configuration").set_defaults(func=cmd_info)

    # presale
    presale = sub.add_parser("presale", help="Presale operations").add_subparsers(dest="action", required=True)

    p = presale.add_parser("info", help="Show presale state")
    p.add_argument("presale_id", type=int)
    p.set_defaults(func=cmd_presale_info)

    p = presale.add_parser("user-info", help="Show a user's position")
    p.add_argument("presale_id", type=int)
    p.add_argument("-a", "--address", help="User address (defaults to the wallet)")
    p.set_defaults(func=cmd_user_info)

    p = presale.add_parser("contribute", help="Contribute USDC")
    p.add_argument("presale_id", type=int)
    p.add_argument("amount", help="Amount in USDC, e.g. 100")
    p.add_argument("--no-approve", action="store_true", help="Fail instead of approving a missing allowance")
    p.set_defaults(func=cmd_contribute)

    p = presale.add_parser("withdraw", help="Withdraw part of your contribution")
    p.add_argument("presale_id", type=int)
    p.add_argument("amount", help="Amount in USDC")
    p.set_defaults(func=cmd_withdraw)

    for name, func, help_text in (
        ("claim", cmd_claim, "Claim tokens and refund"),
        ("claim-tokens", cmd_claim_tokens, "Claim tokens (reputation presale)"),
        ("claim-refund", cmd_claim_refund, "Claim refund (reputation presale)"),
    ):
        p = presale.add_parser(name, help=help_text)
        p.add_argument("presale_id", type=int)
        p.set_defaults(func=func)

    p = presale.add_parser("claim-usdc", help="Claim raised USDC as presale owner")
    p.add_argument("presale_id", type=int)
    p.add_argument("--recipient", help="Recipient (defaults to the wallet)")
    p.set_defaults(func=cmd_claim_usdc)

    # token
    token = sub.add_parser("token", help="Token deployment").add_subparsers(dest="action", required=True)

    p = token.add_parser("deploy", help="Deploy the token of a presale")
    p.add_argument("presale_id", type=int)
    p.set_defaults(func=cmd_token_deploy)

    p = token.add_parser("info", help="Show the deployed token")
    p.add_argument("presale_id", type=int)
    p.set_defaults(func=cmd_token_info)

    p = token.add_parser("balance", help="Show a deployed token balance")
    p.add_argument("presale_id", type=int)
    p.add_argument("-a", "--address", help="Address (defaults to the wallet)")
    p.set_defaults(func=cmd_token_balance)

    # wallet
    wallet = sub.add_parser("wallet", help="Wallet management").add_subparsers(dest="action", required=True)

    p = wallet.add_parser("balance", help="USDC balance and presale allowance")
    p.add_argument("-a", "--address", help="Address (defaults to the wallet)")
    p.set_defaults(func=cmd_wallet_balance)

    p = wallet.add_parser("approve", help="Approve USDC for the presale contract")
    p.add_argument("amount", help='Amount in USDC, or "max" for unlimited')
    p.set_defaults(func=cmd_wallet_approve)

    wallet.add_parser("address", help="Show the wallet address").set_defaults(func=cmd_wallet_address)

    # admin
    admin = sub.add_parser("admin", help="Owner and admin operations").add_subparsers(dest="action", required=True)

    p = admin.add_parser("create", help="Create a presale from a deployment config JSON file")
    p.add_argument("config_file")
    p.add_argument("--target", required=True, help="Target in USDC")
    p.add_argument("--min", required=True, help="Minimum in USDC")
    p.add_argument("--duration", type=int, required=True, help="Duration in seconds")
    p.add_argument("--owner", help="Presale owner (defaults to the wallet)")
    p.add_argument("--supply", help="Presale token supply (reputation presale)")
    p.set_defaults(func=cmd_admin_create)

    p = admin.add_parser("prepare", help="Prepare a presale for token deployment")
    p.add_argument("presale_id", type=int)
    p.add_argument("--salt", default="0x01", help="bytes32 salt, hex")
    p.set_defaults(func=cmd_admin_prepare)

    p = admin.add_parser("set-max-usdc", help="Set a user's max accepted USDC")
    p.add_argument("presale_id", type=int)
    p.add_argument("user")
    p.add_argument("amount", help="Amount in USDC")
    p.set_defaults(func=cmd_admin_set_max_usdc)

    p = admin.add_parser("batch-set-max-usdc", help="Set max accepted USDC from a CSV of address,amount")
    p.add_argument("presale_id", type=int)
    p.add_argument("csv_file")
    p.set_defaults(func=cmd_admin_batch_set_max_usdc)

    p = admin.add_parser("upload-allocation", help="Upload a user's allocation")
    p.add_argument("presale_id", type=int)
    p.add_argument("user")
    p.add_argument("tokens", help="Token allocation")
    p.add_argument("accepted", help="Accepted USDC")
    p.set_defaults(func=cmd_admin_upload_allocation)

    p = admin.add_parser("set-fee", help="Set the karma fee of a presale")
    p.add_argument("presale_id", type=int)
    p.add_argument("fee_bps", type=int)
    p.set_defaults(func=cmd_admin_set_fee)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = cfg.load_config()

    level = logging.DEBUG if args.debug else getattr(logging, str(config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )

    try:
        ctx = CliContext(
            config,
            args.network or config["NETWORK"],
            args.variant or config["PRESALE_VARIANT"],
            debug=args.debug,
        )
        result = asyncio.run(args.func(ctx, args))
    except PresaleError as e:
        output.print_error(e, debug=args.debug)
        return 1
    except (OSError, ValueError) as e:
        output.print_error(e, debug=args.debug)
        return 1
    return result or 0


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()

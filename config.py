"""
Configuration of the Karma presale client
"""

import os
import json
import logging
from typing import Dict, Any, Optional

from dotenv import load_dotenv
from eth_account import Account

from errors import no_signer, unknown_network
from variants import get_variant  # noqa: F401  re-exported for the CLI

logger = logging.getLogger("config")

CONFIG_FILE = "config.json"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Default configuration
DEFAULT_CONFIG = {
    # Target
    "NETWORK": "base-sepolia",
    "PRESALE_VARIANT": "allocated",

    # Wallet
    "PRIVATE_KEY": "",

    # Transactions (0 = wait for the receipt as long as it takes)
    "RECEIPT_TIMEOUT_SECONDS": 0,

    # Notifier
    "ENABLE_TELEGRAM": False,
    "TELEGRAM_BOT_TOKEN": "",
    "TELEGRAM_CHAT_ID": "",

    # System
    "LOG_LEVEL": "INFO",
}


def load_env_file() -> Optional[str]:
    """
    Loads the first .env found in the working directory or up to two parents.
    Variables already set in the environment win.
    """
    cwd = os.getcwd()
    for env_path in (
        os.path.join(cwd, ".env"),
        os.path.join(cwd, "..", ".env"),
        os.path.join(cwd, "..", "..", ".env"),
    ):
        if os.path.exists(env_path):
            load_dotenv(env_path)
            logger.debug(f".env loaded from: {os.path.abspath(env_path)}")
            return env_path
    load_dotenv()
    return None


def load_config(config_file: str = CONFIG_FILE) -> Dict[str, Any]:
    """
    Builds the configuration: defaults, then config.json if present,
    then environment variables.

    Returns:
        Configuration dictionary
    """
    load_env_file()
    config = dict(DEFAULT_CONFIG)

    if os.path.exists(config_file):
        try:
            with open(config_file, "r") as f:
                config.update(json.load(f))
            logger.info(f"Configuration loaded from: {config_file}")
        except (OSError, ValueError) as e:
            logger.error(f"Error loading {config_file}: {e}")
            logger.info("Falling back to defaults and environment")

    config.update(load_config_from_env(config))
    return config


def load_config_from_env(base: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Reads every known key from the environment, coerced to the type of its default.

    Returns:
        Dictionary with the keys found in the environment
    """
    base = base or DEFAULT_CONFIG
    config = {}

    for key, default_value in DEFAULT_CONFIG.items():
        env_value = os.environ.get(key)
        if env_value is None:
            continue

        try:
            if isinstance(default_value, bool):
                config[key] = env_value.strip().lower() in ("true", "1", "yes")
            elif isinstance(default_value, int):
                config[key] = int(env_value)
            elif isinstance(default_value, float):
                config[key] = float(env_value)
            else:
                config[key] = env_value
        except ValueError as parse_err:
            logger.warning(f"Could not parse env variable {key}: {parse_err}. Keeping {base.get(key)!r}.")

    return config


# ---------- Networks ----------

def get_networks() -> Dict[str, Dict[str, Any]]:
    """Supported networks, with RPC URLs and addresses overridable from the environment."""
    env = os.environ.get
    return {
        "base-sepolia": {
            "name": "Base Sepolia",
            "chain_id": 84532,
            "rpc_url": env("BASE_SEPOLIA_RPC_URL") or "https://sepolia.base.org",
            "presale_address": env("PRESALE_ADDRESS") or "0x1f0FB2ac6a3a4C6162159eEe26d86E06aB23ee12",
            "karma_factory_address": env("KARMA_FACTORY_ADDRESS") or "0x129183B7CC4F23e115064590dA970BB3Abc3C500",
            "usdc_address": env("USDC_ADDRESS") or "0x72338D8859884B4CeeAE68651E8B8e49812f2fEe",
            "explorer_url": "https://sepolia.basescan.org",
        },
        "base": {
            "name": "Base Mainnet",
            "chain_id": 8453,
            "rpc_url": env("BASE_RPC_URL") or "https://mainnet.base.org",
            "presale_address": env("PRESALE_ADDRESS_MAINNET") or ZERO_ADDRESS,
            "karma_factory_address": env("KARMA_FACTORY_ADDRESS_MAINNET") or ZERO_ADDRESS,
            "usdc_address": env("USDC_ADDRESS_MAINNET") or "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
            "explorer_url": "https://basescan.org",
        },
        "anvil": {
            "name": "Anvil (local)",
            "chain_id": 31337,
            "rpc_url": env("ANVIL_RPC_URL") or "http://127.0.0.1:8545",
            "presale_address": "0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0",
            "karma_factory_address": ZERO_ADDRESS,
            "usdc_address": "0x5FbDB2315678afecb367f032d93F642f64180aa3",
            "explorer_url": "",
        },
    }


def get_network_config(network: str) -> Dict[str, Any]:
    networks = get_networks()
    network_config = networks.get(network)
    if network_config is None:
        raise unknown_network(network, networks.keys())
    return network_config


def get_signer(config: Dict[str, Any]):
    """
    Local account built from PRIVATE_KEY. The key itself is never logged.
    """
    private_key = (config.get("PRIVATE_KEY") or "").strip()
    if not private_key:
        raise no_signer()
    if not private_key.startswith("0x"):
        private_key = f"0x{private_key}"
    try:
        return Account.from_key(private_key)
    except ValueError as e:
        raise no_signer() from e


def receipt_timeout(config: Dict[str, Any]) -> Optional[float]:
    timeout = config.get("RECEIPT_TIMEOUT_SECONDS") or 0
    return float(timeout) if timeout > 0 else None


def explorer_tx_url(network: str, tx_hash: str) -> str:
    return f"{get_network_config(network)['explorer_url']}/tx/{tx_hash}"


def explorer_address_url(network: str, address: str) -> str:
    return f"{get_network_config(network)['explorer_url']}/address/{address}"

# Filename: telegram_alert.py

import logging
from typing import Optional

import requests

logger = logging.getLogger("TelegramNotifier")


class TelegramNotifier:
    def __init__(self, bot_token: str = None, chat_id: str = None):
        self.bot_token = bot_token or ""
        self.chat_id = chat_id or ""

        if not self.bot_token or not self.chat_id:
            logger.error("[Telegram] Missing bot token or chat ID!")

    @classmethod
    def from_config(cls, config: dict) -> Optional["TelegramNotifier"]:
        if config.get("ENABLE_TELEGRAM") and config.get("TELEGRAM_BOT_TOKEN") and config.get("TELEGRAM_CHAT_ID"):
            return cls(config["TELEGRAM_BOT_TOKEN"], config["TELEGRAM_CHAT_ID"])
        return None

    def send_transaction_alert(self, action: str, presale_id, receipt, status: str = None,
                               explorer_link: str = None):
        """
        Sends a confirmed transaction summary. Never raises.
        """
        icon = "✅" if receipt.success else "❌"
        msg = f"""
{icon} *{action}*

*Presale:* `#{presale_id}`
*Status:* `{status or receipt.status}`
*Block:* {receipt.block_number}
*Gas Used:* {receipt.gas_used:,}
        """.strip()

        if explorer_link:
            msg += f"\n\n🔍 [View on Explorer]({explorer_link})"

        self.send_markdown(msg)

    def send_markdown(self, text: str) -> bool:
        """
        Sends a raw Markdown message.
        """
        if not self.bot_token or not self.chat_id:
            return False

        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "Markdown",
            "disable_web_page_preview": False
        }

        try:
            response = requests.post(url, data=payload, timeout=10)
        except requests.RequestException as e:
            logger.error(f"[Telegram] Request exception: {e}")
            return False

        if response.status_code != 200:
            logger.error(f"[Telegram] Failed: {response.status_code} - {response.text}")
            return False
        logger.info("[Telegram] ✅ Message sent successfully.")
        return True

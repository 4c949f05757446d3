"""
OpsLink Hosting - Discord logging
Posts operational events as embeds to a Discord webhook
"""
import logging
from datetime import datetime
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

COLOR_INFO = 0x4E8CFF
COLOR_SUCCESS = 0x00FF00
COLOR_NOTICE = 0x00FFFF
COLOR_ERROR = 0xFF0000


class DiscordNotifier:

    def __init__(self, webhook_url: str, transport: Optional[httpx.BaseTransport] = None):
        self.webhook_url = webhook_url
        self.enabled = bool(webhook_url)
        self._transport = transport

    def send(self, title: str, description: str, color: int = COLOR_INFO) -> bool:
        """Send an embed. Returns False instead of raising."""
        if not self.enabled:
            return False
        embed = {
            "title": title[:256],
            "description": description[:4000],
            "color": color,
            "timestamp": datetime.utcnow().isoformat() + "Z",
        }
        try:
            with httpx.Client(timeout=10, transport=self._transport) as client:
                resp = client.post(self.webhook_url, json={"embeds": [embed]})
            if resp.status_code >= 400:
                logger.error(f"Discord logging failed: HTTP {resp.status_code}")
                return False
            return True
        except Exception as e:
            logger.error(f"Discord logging failed: {e}")
            return False

import json
import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

@dataclass
class BotConfig:
    welcome_channel_id: Optional[str] = None
    ticket_counter: int = 1

    def to_json(self) -> dict:
        return {
            "welcomeChannelId": self.welcome_channel_id,
            "ticketCounter": self.ticket_counter,
        }

    @classmethod
    def from_json(cls, data: dict) -> "BotConfig":
        channel = data.get("welcomeChannelId")
        return cls(
            welcome_channel_id=str(channel) if channel else None,
            ticket_counter=int(data.get("ticketCounter", 1)),
        )

class ConfigStore:
    """Holds the singleton bot configuration and rewrites it on every change."""

    def __init__(self, path: str):
        self.path = path
        self.config = BotConfig()

    def load(self) -> None:
        if not os.path.exists(self.path):
            self.config = BotConfig()
            return
        with open(self.path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError(f"{self.path}: expected a JSON object")
        self.config = BotConfig.from_json(raw)
        logger.info("Loaded bot config from %s", self.path)

    def save(self) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self.config.to_json(), f, indent=2)

    @property
    def welcome_channel_id(self) -> Optional[str]:
        return self.config.welcome_channel_id

    def set_welcome_channel(self, channel_id) -> None:
        self.config.welcome_channel_id = str(channel_id)
        self.save()

    def clear_welcome_channel(self) -> None:
        self.config.welcome_channel_id = None
        self.save()

    def take_ticket_number(self) -> int:
        n = self.config.ticket_counter
        self.config.ticket_counter = n + 1
        self.save()
        return n

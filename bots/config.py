"""Configuration helpers for the battle bot runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

REQUIRED_VARS = ("DISCORD_TOKEN", "OPENAI_API_KEY", "BATTLE_TABLE_NAME")


def env_bool(name: str, *, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return default


def env_int(name: str, *, default: int | None = None) -> int | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_float(name: str, *, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value >= 0 else default


@dataclass(frozen=True)
class BattleBotEnvironment:
    discord_token: str | None
    openai_api_key: str | None
    table_name: str | None
    aws_region: str = "us-east-1"
    solana_rpc_url: str | None = None
    howrare_api_url: str | None = None
    guild_id: int | None = None
    text_model: str = "gpt-4o-mini"
    image_model: str = "gpt-image-1"
    choice_timeout: float = 60.0
    generation_timeout: float = 120.0
    match_interval: float = 8.0
    verify_batch_size: int = 3
    verify_batch_delay: float = 1.0
    bulk_lookups: bool = True

    @classmethod
    def load(cls, *, require: bool = True) -> BattleBotEnvironment:
        """Read the environment; ``require`` rejects missing credentials."""
        missing = [name for name in REQUIRED_VARS if not os.getenv(name)]
        if require and missing:
            raise RuntimeError(f"Missing env vars: {', '.join(missing)}")
        batch_size = env_int("VERIFY_BATCH_SIZE", default=3) or 3
        return cls(
            discord_token=os.getenv("DISCORD_TOKEN"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            table_name=os.getenv("BATTLE_TABLE_NAME"),
            aws_region=os.getenv("AWS_REGION", "us-east-1"),
            solana_rpc_url=os.getenv("SOLANA_RPC_URL") or None,
            howrare_api_url=os.getenv("HOWRARE_API_URL") or None,
            guild_id=env_int("BATTLE_GUILD_ID"),
            text_model=os.getenv("OPENAI_TEXT_MODEL") or "gpt-4o-mini",
            image_model=os.getenv("OPENAI_IMAGE_MODEL") or "gpt-image-1",
            choice_timeout=env_float("CHOICE_TIMEOUT_SECONDS", default=60.0),
            generation_timeout=env_float("GENERATION_TIMEOUT_SECONDS", default=120.0),
            match_interval=env_float("MATCH_INTERVAL_SECONDS", default=8.0),
            verify_batch_size=max(1, batch_size),
            verify_batch_delay=env_float("VERIFY_BATCH_DELAY_SECONDS", default=1.0),
            bulk_lookups=env_bool("VERIFY_BULK_LOOKUPS", default=True),
        )

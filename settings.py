import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

@dataclass(frozen=True)
class Settings:
    discord_token: str
    client_id: int
    admin_user_ids: Tuple[str, ...]
    guild_id: Optional[int]
    api_port: int
    key_prefix: str = "Firebase"
    keys_file: str = "./keys.json"
    config_file: str = "./config.json"
    server_info_file: str = "./server_info.txt"
    log_level: str = "INFO"

def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name, "").strip()
    if not value:
        raise SystemExit(f"Missing {name} env var.")
    return value

def _int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise SystemExit(f"{name} must be an integer, got {value!r}.")

def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    if env is None:
        env = os.environ

    admins = tuple(
        str(_int("ADMIN_USER_IDS", a.strip()))
        for a in _require(env, "ADMIN_USER_IDS").split(",") if a.strip()
    )
    if not admins:
        raise SystemExit("ADMIN_USER_IDS must list at least one user id.")

    guild_raw = env.get("GUILD_ID", "").strip()

    return Settings(
        discord_token=_require(env, "DISCORD_TOKEN"),
        client_id=_int("CLIENT_ID", _require(env, "CLIENT_ID")),
        admin_user_ids=admins,
        guild_id=_int("GUILD_ID", guild_raw) if guild_raw else None,
        api_port=_int("API_PORT", _require(env, "API_PORT")),
        key_prefix=env.get("KEY_PREFIX", "").strip() or "Firebase",
        keys_file=env.get("KEYS_FILE", "").strip() or "./keys.json",
        config_file=env.get("CONFIG_FILE", "").strip() or "./config.json",
        server_info_file=env.get("SERVER_INFO_FILE", "").strip() or "./server_info.txt",
        log_level=(env.get("LOG_LEVEL", "").strip() or "INFO").upper(),
    )

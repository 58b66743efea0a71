import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_PORT = 3000


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class BotConfig:
    token: str
    client_id: int
    guild_id: int | None = None
    port: int = DEFAULT_PORT
    log_level: str = "INFO"
    log_dir: Path = Path("logs")

    @property
    def scope(self) -> str:
        return f"guild:{self.guild_id}" if self.guild_id else "global"


def _optional_int(env: dict[str, str], key: str) -> int | None:
    raw = (env.get(key) or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got {raw!r}.") from e


def load_config(env: dict[str, str] | None = None, *, dotenv: bool = True) -> BotConfig:
    """Build the bot configuration from the process environment.

    ``.env`` is loaded first unless ``dotenv`` is False. Missing credentials
    raise ConfigError so startup stops before connecting to the gateway.
    """
    if env is None:
        if dotenv:
            load_dotenv()
        env = dict(os.environ)
    token = (env.get("DISCORD_TOKEN") or "").strip()
    client_id = _optional_int(env, "DISCORD_CLIENT_ID")
    if not token or client_id is None:
        raise ConfigError("Missing DISCORD_TOKEN or DISCORD_CLIENT_ID env.")
    port = _optional_int(env, "PORT")
    return BotConfig(
        token=token,
        client_id=client_id,
        guild_id=_optional_int(env, "DISCORD_GUILD_ID"),
        port=port if port is not None else DEFAULT_PORT,
        log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper() or "INFO",
        log_dir=Path(env.get("LOG_DIR") or "logs"),
    )

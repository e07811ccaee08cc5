import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from app.services.roster import ExclusionPolicy

load_dotenv()


@dataclass(frozen=True)
class Settings:
    bot_token: Optional[str]
    database_url: str
    roster_path: str
    exclusion_policy: ExclusionPolicy
    api_host: str
    api_port: Optional[int]
    log_level: str
    log_path: str


def load_settings() -> Settings:
    bot_token = os.getenv("BOT_TOKEN") or None
    database_url = os.getenv("DATABASE_URL")
    roster_path = os.getenv("ROSTER_PATH", "roster.json")
    exclusion_policy = os.getenv("EXCLUSION_POLICY", ExclusionPolicy.MIRROR.value).lower()
    api_host = os.getenv("API_HOST", "0.0.0.0")
    api_port = os.getenv("API_PORT") or None
    log_level = os.getenv("LOG_LEVEL", "INFO")
    log_path = os.getenv("LOG_PATH", "logs/gift_exchange.log")

    if not database_url:
        raise ValueError("DATABASE_URL is required. Set it in the environment or .env file.")
    if not bot_token and not api_port:
        raise ValueError("Set BOT_TOKEN, API_PORT or both. Nothing to run otherwise.")

    try:
        policy = ExclusionPolicy(exclusion_policy)
    except ValueError:
        choices = ", ".join(item.value for item in ExclusionPolicy)
        raise ValueError(f"EXCLUSION_POLICY must be one of: {choices}") from None

    port = None
    if api_port:
        if not api_port.isdigit():
            raise ValueError("API_PORT must be a port number.")
        port = int(api_port)

    return Settings(
        bot_token=bot_token,
        database_url=database_url,
        roster_path=roster_path,
        exclusion_policy=policy,
        api_host=api_host,
        api_port=port,
        log_level=log_level,
        log_path=log_path,
    )

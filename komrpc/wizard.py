"""
Interactive first-run setup: asks for the few values KomRPC needs and writes config.yaml.
"""
import os
from typing import Callable, Optional

import yaml

from .config import DEFAULT_CONFIG_PATH, Settings
from .logger import get_logger

logger = get_logger()

DEFAULT_DISCORD_CLIENT_ID = "1387202171270861033"


def prompt_with_default(ask: Callable[[str], str], label: str, default: Optional[str] = None) -> str:
    suffix = f" [{default}]" if default else ""
    answer = ask(f"{label}{suffix}: ").strip()
    return answer or (default or "")


def prompt_config(ask: Callable[[str], str] = input) -> dict:
    """Collects configuration values and returns them in config file layout."""
    print("Please enter the following information:")
    komga_url = prompt_with_default(ask, "Komga URL (e.g. http://localhost:25600)")
    api_key = prompt_with_default(ask, "Komga API Key")
    discord_id = prompt_with_default(ask, "Discord Client ID", DEFAULT_DISCORD_CLIENT_ID)
    imgur_id = prompt_with_default(ask, "Imgur Client ID (leave empty to skip cover upload)")
    excluded = prompt_with_default(ask, "Libraries to hide, comma separated (optional)")

    return {
        "komga": {"base_url": komga_url, "api_key": api_key},
        "integration": {
            "discord_client_id": discord_id,
            "use_imgur_cover": bool(imgur_id),
            "imgur_client_id": imgur_id or None,
        },
        "exclude_libraries": [name.strip() for name in excluded.split(",") if name.strip()],
        "general": {"poll_interval_seconds": 15},
    }


def run_wizard(path: str = DEFAULT_CONFIG_PATH, ask: Callable[[str], str] = input) -> Settings:
    """Prompts, validates and writes a new config file. Refuses to overwrite one."""
    if os.path.exists(path):
        raise FileExistsError(f"{path} already exists; edit it or remove it first.")

    data = prompt_config(ask)
    settings = Settings(**data)  # fail before writing anything invalid

    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False)
    logger.info(f"Configuration written to {path}")
    return settings
